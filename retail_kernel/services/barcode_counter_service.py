"""
BarcodeCounterService -- atomic barcode counter allocation.

Responsibility:
    Hands out strictly increasing counter values per barcode namespace
    ("unit", "product").  Each allocation is ONE statement evaluated by the
    database::

        UPDATE barcode_counters
           SET current_value = current_value + 1
         WHERE name = :name
     RETURNING current_value

    so two sessions can never observe the same value.  Reading the counter,
    incrementing it in Python and writing it back is FORBIDDEN here -- that is
    the lost-update race this service exists to prevent.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by BarcodeRegistryService.generate_unique_barcode.

Invariants enforced:
    - Monotonicity: every successful call increments exactly one counter by
      exactly 1 and returns the new value.
    - Transactional: the increment becomes visible when the caller's
      transaction commits; a rollback returns the value.

Failure modes:
    - IntegrityError: two sessions seeding the same missing counter row at
      once (handled via savepoint rollback and retry of the UPDATE).
"""

from __future__ import annotations

from typing import Mapping

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from retail_kernel.domain.barcode_config import DEFAULT_COUNTER_START
from retail_kernel.domain.barcode_format import BarcodeType
from retail_kernel.logging_config import get_logger
from retail_kernel.models.settings import BarcodeCounter
from retail_kernel.services.base import BaseService

logger = get_logger("services.barcode_counter")


class BarcodeCounterService(BaseService[BarcodeCounter]):
    """
    Service for allocating barcode counter values.

    Contract:
        ``next_value(barcode_type)`` returns the next counter for that
        namespace.  A namespace with no row yet is seeded at its start value
        (default 1000), so the first allocation returns start + 1.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT compose barcodes; see barcode_format.compose_barcode.
    """

    def __init__(
        self,
        session: Session,
        start_values: Mapping[BarcodeType, int] | None = None,
    ):
        super().__init__(session)
        self._start_values = {
            BarcodeType.UNIT: DEFAULT_COUNTER_START,
            BarcodeType.PRODUCT: DEFAULT_COUNTER_START,
        }
        for key, value in (start_values or {}).items():
            self._start_values[BarcodeType(key)] = int(value)

    def _increment(self, name: str) -> int | None:
        stmt = (
            update(BarcodeCounter)
            .where(BarcodeCounter.name == name)
            .values(current_value=BarcodeCounter.current_value + 1)
            .returning(BarcodeCounter.current_value)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _seed(self, barcode_type: BarcodeType) -> None:
        """Create the counter row at its start value; tolerate a racing seed."""
        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                BarcodeCounter(
                    name=barcode_type.value,
                    current_value=self._start_values[barcode_type],
                )
            )
            self.session.flush()
            savepoint.commit()
            logger.info(
                "barcode_counter_seeded",
                extra={
                    "barcode_type": barcode_type.value,
                    "start_value": self._start_values[barcode_type],
                },
            )
        except IntegrityError:
            # Another session created it first; its row is authoritative.
            logger.debug(
                "barcode_counter_seed_race",
                extra={"barcode_type": barcode_type.value},
            )
            savepoint.rollback()

    def next_value(self, barcode_type: BarcodeType | str) -> int:
        """
        Atomically increment and return the counter for ``barcode_type``.

        Postconditions:
            - Returns a value strictly greater than any value previously
              returned for this namespace.
        """
        barcode_type = BarcodeType(barcode_type)

        value = self._increment(barcode_type.value)
        if value is None:
            self._seed(barcode_type)
            value = self._increment(barcode_type.value)
            if value is None:
                raise RuntimeError(
                    f"Barcode counter '{barcode_type.value}' missing after seeding"
                )

        logger.debug(
            "barcode_counter_allocated",
            extra={"barcode_type": barcode_type.value, "value": value},
        )
        return value

    def current_value(self, barcode_type: BarcodeType | str) -> int | None:
        """Last issued value, or None if the counter was never seeded."""
        barcode_type = BarcodeType(barcode_type)
        counter = self.session.execute(
            select(BarcodeCounter)
            .where(BarcodeCounter.name == barcode_type.value)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def current_values(self) -> dict[BarcodeType, int]:
        """Last issued values for every namespace, start values where unseeded."""
        values = dict(self._start_values)
        for barcode_type in BarcodeType:
            current = self.current_value(barcode_type)
            if current is not None:
                values[barcode_type] = current
        return values

    def reset(self, barcode_type: BarcodeType | str, value: int) -> None:
        """
        Set a counter to a specific value.

        WARNING: tests and migrations only.  Moving a counter backwards makes
        the next allocations collide with registered barcodes.
        """
        barcode_type = BarcodeType(barcode_type)
        counter = self.session.execute(
            select(BarcodeCounter)
            .where(BarcodeCounter.name == barcode_type.value)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            self.session.add(BarcodeCounter(name=barcode_type.value, current_value=value))
        else:
            counter.current_value = value

        self.session.flush()
        logger.warning(
            "barcode_counter_reset",
            extra={"barcode_type": barcode_type.value, "value": value},
        )

    def initialize_counters(self) -> None:
        """Create any missing counter rows at their start values."""
        for barcode_type in BarcodeType:
            existing = self.session.execute(
                select(BarcodeCounter).where(BarcodeCounter.name == barcode_type.value)
            ).scalar_one_or_none()
            if existing is None:
                self.session.add(
                    BarcodeCounter(
                        name=barcode_type.value,
                        current_value=self._start_values[barcode_type],
                    )
                )
        self.session.flush()
