"""
BarcodeRegistryService -- barcode generation and the barcode -> entity registry.

Responsibility:
    Mints globally unique barcodes for products and product units, records
    which entity each barcode identifies, and answers lookups by barcode and
    by entity.  Publishes ``barcode_registered`` on the coordination bus after
    every successful generation.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by ProductUnitCoordinator (catalog writes), ProductIntegrityService
    (repair of missing barcodes) and feature code such as supplier receiving.

Invariants enforced:
    - Uniqueness: the counter comes from BarcodeCounterService's single
      atomic UPDATE, and the registry insert is guarded by the unique
      constraint on ``barcode``.  Both happen in the caller's transaction.
    - Format: every generated barcode passes validate_code128 before it is
      registered.

Failure modes:
    - DuplicateBarcodeError: composed or supplied barcode already registered.
      The counter value is consumed; retrying allocates the next one.
    - BarcodeCounterOverflowError: the counter no longer fits six digits.
    - ConfigUnavailableError never escapes: the default config is used.

Recovery after an unknown outcome (timeout mid-allocation):
    call ``get_or_generate_barcode`` -- it looks the entity up first so a
    retry never mints a second barcode for the same entity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from retail_kernel.domain.barcode_config import BarcodeConfig
from retail_kernel.domain.barcode_format import (
    FORMAT_CODE128,
    BarcodeType,
    EntityType,
    compose_barcode,
    validate_code128,
)
from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.domain.events import CoordinationEventType, EventSource
from retail_kernel.exceptions import (
    ConfigUnavailableError,
    DuplicateBarcodeError,
    RetailKernelError,
)
from retail_kernel.logging_config import LogContext, get_logger
from retail_kernel.models.barcode import BarcodeRecord
from retail_kernel.services.barcode_config_service import BarcodeConfigService
from retail_kernel.services.barcode_counter_service import BarcodeCounterService
from retail_kernel.services.base import BaseService
from retail_kernel.services.coordination_bus import CoordinationBus

logger = get_logger("services.barcode_registry")

_DEFAULT_BARCODE_TYPE = {
    EntityType.PRODUCT: BarcodeType.PRODUCT,
    EntityType.PRODUCT_UNIT: BarcodeType.UNIT,
}


@dataclass(frozen=True)
class BarcodeRecordInfo:
    """Immutable DTO for a registry row."""

    id: UUID
    barcode: str
    barcode_type: BarcodeType
    entity_type: EntityType
    entity_id: str
    format: str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, record: BarcodeRecord) -> BarcodeRecordInfo:
        return cls(
            id=record.id,
            barcode=record.barcode,
            barcode_type=BarcodeType(record.barcode_type),
            entity_type=EntityType(record.entity_type),
            entity_id=record.entity_id,
            format=record.format,
            metadata=dict(record.metadata_ or {}),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class BarcodeRegistryService(BaseService[BarcodeRecord]):
    """
    Barcode generation and registry.

    Contract:
        All public methods return BarcodeRecordInfo DTOs or plain values,
        never ORM rows.  Writes are flushed, not committed.
    """

    def __init__(
        self,
        session: Session,
        bus: CoordinationBus | None = None,
        clock: Clock | None = None,
        config_service: BarcodeConfigService | None = None,
        counter_service: BarcodeCounterService | None = None,
    ):
        super().__init__(session)
        self._bus = bus
        self._clock = clock or SystemClock()
        self._config = config_service or BarcodeConfigService(session)
        self._counters = counter_service or BarcodeCounterService(
            session, start_values=self._config.default_config.counters
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_unique_barcode(
        self,
        entity_type: EntityType | str,
        entity_id: Any,
        barcode_type: BarcodeType | str = BarcodeType.UNIT,
        metadata: Mapping[str, Any] | None = None,
        source: EventSource | str = EventSource.INVENTORY,
    ) -> str:
        """
        Allocate, compose, register and announce a new barcode.

        Preconditions:
            - ``entity_id`` identifies an entity the caller already created;
              existence is not checked.

        Returns:
            The registered barcode string.

        Raises:
            ValueError: empty entity_id.
            DuplicateBarcodeError: composed barcode already registered.
            BarcodeCounterOverflowError: counter exceeded six digits.
        """
        entity_type = EntityType(entity_type)
        barcode_type = BarcodeType(barcode_type)
        if entity_id is None or not str(entity_id).strip():
            raise ValueError("entity_id must be a non-empty identifier")
        entity_id = str(entity_id)
        source = EventSource(source)

        with LogContext.bind(
            operation="generate_barcode",
            source=source,
            entity_type=entity_type,
            entity_id=entity_id,
        ):
            config = self._config.get_config()
            counter = self._counters.next_value(barcode_type)
            barcode = compose_barcode(config.prefix, barcode_type, counter)

            with LogContext.bind(barcode=barcode):
                validate_code128(barcode).raise_if_invalid(barcode)
                self.register_barcode(
                    barcode, barcode_type, entity_type, entity_id, metadata
                )
                logger.info(
                    "barcode_generated",
                    extra={"barcode_type": barcode_type.value, "counter": counter},
                )
                self._announce(barcode, entity_type, entity_id, metadata, source)

        return barcode

    def _announce(
        self,
        barcode: str,
        entity_type: EntityType,
        entity_id: str,
        metadata: Mapping[str, Any] | None,
        source: EventSource,
    ) -> None:
        if self._bus is None:
            return
        event_metadata: dict[str, Any] = {
            "barcode": barcode,
            "entityType": entity_type.value,
        }
        product_id = (metadata or {}).get("product_id")
        if entity_type is EntityType.PRODUCT:
            product_id = entity_id
        if product_id is not None:
            event_metadata["productId"] = str(product_id)
        self._bus.notify(
            CoordinationEventType.BARCODE_REGISTERED,
            source,
            entity_id,
            **event_metadata,
        )

    def generate_unit_barcode(
        self,
        unit_id: Any,
        metadata: Mapping[str, Any] | None = None,
        source: EventSource | str = EventSource.INVENTORY,
    ) -> str:
        return self.generate_unique_barcode(
            EntityType.PRODUCT_UNIT, unit_id, BarcodeType.UNIT, metadata, source
        )

    def generate_product_barcode(
        self,
        product_id: Any,
        metadata: Mapping[str, Any] | None = None,
        source: EventSource | str = EventSource.INVENTORY,
    ) -> str:
        return self.generate_unique_barcode(
            EntityType.PRODUCT, product_id, BarcodeType.PRODUCT, metadata, source
        )

    def generate_bulk_unit_barcodes(
        self,
        unit_ids: Iterable[Any],
        source: EventSource | str = EventSource.INVENTORY,
    ) -> dict[str, str]:
        """
        Generate one unit barcode per id.

        A failing id is logged and left out of the result; the batch itself
        never raises.  Callers detect partial failure by missing keys.
        """
        results: dict[str, str] = {}
        failures: list[str] = []

        for unit_id in unit_ids:
            key = str(unit_id)
            try:
                results[key] = self.generate_unit_barcode(unit_id, source=source)
            except (RetailKernelError, SQLAlchemyError, ValueError):
                failures.append(key)
                logger.exception("bulk_barcode_item_failed", extra={"unit_id": key})

        if failures:
            logger.warning(
                "bulk_barcode_partial_failure",
                extra={
                    "requested": len(results) + len(failures),
                    "generated": len(results),
                    "failed_unit_ids": failures,
                },
            )
        return results

    def get_or_generate_barcode(
        self,
        entity_type: EntityType | str,
        entity_id: Any,
        barcode_type: BarcodeType | str | None = None,
        metadata: Mapping[str, Any] | None = None,
        source: EventSource | str = EventSource.INVENTORY,
    ) -> str:
        """Existing barcode for the entity, or a newly generated one."""
        entity_type = EntityType(entity_type)
        existing = self.get_barcode_by_entity(entity_type, entity_id)
        if existing is not None:
            return existing.barcode
        return self.generate_unique_barcode(
            entity_type,
            entity_id,
            barcode_type or _DEFAULT_BARCODE_TYPE[entity_type],
            metadata,
            source,
        )

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_barcode(
        self,
        barcode: str,
        barcode_type: BarcodeType | str,
        entity_type: EntityType | str,
        entity_id: Any,
        metadata: Mapping[str, Any] | None = None,
    ) -> BarcodeRecordInfo:
        """
        Insert a barcode -> entity mapping.

        The insert runs in a savepoint so a uniqueness violation leaves the
        caller's transaction usable.

        Raises:
            DuplicateBarcodeError: barcode already registered.
        """
        if not isinstance(barcode, str) or not barcode:
            raise ValueError("barcode must be a non-empty string")

        now = self._clock.now()
        record = BarcodeRecord(
            barcode=barcode,
            barcode_type=BarcodeType(barcode_type).value,
            entity_type=EntityType(entity_type).value,
            entity_id=str(entity_id),
            format=FORMAT_CODE128,
            metadata_=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "barcode_duplicate_rejected",
                extra={"barcode": barcode, "entity_id": str(entity_id)},
            )
            raise DuplicateBarcodeError(barcode) from None

        logger.debug(
            "barcode_registered",
            extra={"barcode": barcode, "entity_id": str(entity_id)},
        )
        return BarcodeRecordInfo.from_model(record)

    def get_barcode_by_entity(
        self,
        entity_type: EntityType | str,
        entity_id: Any,
    ) -> BarcodeRecordInfo | None:
        """Most recent record for (entity_type, entity_id), or None."""
        record = self.session.execute(
            select(BarcodeRecord)
            .where(
                BarcodeRecord.entity_type == EntityType(entity_type).value,
                BarcodeRecord.entity_id == str(entity_id),
            )
            .order_by(BarcodeRecord.created_at.desc(), BarcodeRecord.barcode.desc())
            .limit(1)
        ).scalar_one_or_none()
        return BarcodeRecordInfo.from_model(record) if record else None

    def get_by_barcode(self, barcode: str) -> BarcodeRecordInfo | None:
        record = self.session.execute(
            select(BarcodeRecord).where(BarcodeRecord.barcode == barcode)
        ).scalar_one_or_none()
        return BarcodeRecordInfo.from_model(record) if record else None

    def validate_barcode_uniqueness(self, barcode: str) -> bool:
        """True iff no registry row holds ``barcode``."""
        found = self.session.execute(
            select(BarcodeRecord.id).where(BarcodeRecord.barcode == barcode).limit(1)
        ).first()
        return found is None

    def get_barcode_history(self, entity_id: Any) -> list[BarcodeRecordInfo]:
        """All records for ``entity_id``, most recent first."""
        records = self.session.execute(
            select(BarcodeRecord)
            .where(BarcodeRecord.entity_id == str(entity_id))
            .order_by(BarcodeRecord.created_at.desc(), BarcodeRecord.barcode.desc())
        ).scalars().all()
        return [BarcodeRecordInfo.from_model(r) for r in records]

    # ------------------------------------------------------------------
    # Configuration / health
    # ------------------------------------------------------------------

    def get_config(self) -> BarcodeConfig:
        """Current configuration with live counter values."""
        config = self._config.get_config()
        return BarcodeConfig(
            prefix=config.prefix,
            format=config.format,
            counters=self._counters.current_values(),
        )

    def health_check(self) -> dict[str, Any]:
        """healthy: stored config readable; degraded: default in use; unhealthy: store error."""
        try:
            try:
                config = self._config.load_config()
                status = "healthy"
            except ConfigUnavailableError as exc:
                config = self._config.default_config
                status = "degraded"
                logger.warning("barcode_health_degraded", extra={"reason": exc.reason})
            counters = self._counters.current_values()
        except SQLAlchemyError as exc:
            logger.exception("barcode_health_unhealthy")
            return {"status": "unhealthy", "details": {"error": str(exc)}}

        return {
            "status": status,
            "details": {
                "prefix": config.prefix,
                "format": config.format,
                "counters": {k.value: v for k, v in counters.items()},
            },
        }
