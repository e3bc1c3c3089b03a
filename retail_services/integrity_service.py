"""
ProductIntegrityService -- detect and repair catalog / registry drift.

Responsibility:
    Runs the detection queries of CatalogSelector as one validation pass and
    repairs the drift that can be repaired mechanically:

    ======================  =========================================
    Finding                 Repair
    ======================  =========================================
    missing barcode         register the row's barcode, or mint one
    inconsistent has_serial set it to "has at least one unit"
    stock mismatch          set stock to the available unit count
    orphaned unit           report only
    duplicate serial        report only
    ======================  =========================================

Architecture position:
    Services layer.  Uses BarcodeRegistryService for every barcode it writes
    so repaired barcodes pass through the same allocator as new ones.

Invariants enforced:
    - Validation never raises on a database error: the failure is logged
      and an unhealthy, empty status is returned.
    - Fixes are independent: one failed repair is logged and skipped.
    - Fixes flush but do not commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from retail_kernel.db.engine import session_scope
from retail_kernel.domain.barcode_config import BarcodeConfig
from retail_kernel.domain.barcode_format import BarcodeType, EntityType
from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.domain.events import (
    CoordinationEvent,
    CoordinationEventType,
    EventSource,
)
from retail_kernel.exceptions import RetailKernelError
from retail_kernel.logging_config import LogContext, get_logger
from retail_kernel.models.product import Product, ProductUnit
from retail_kernel.selectors.catalog_selector import (
    CatalogSelector,
    DuplicateSerial,
    InconsistentFlag,
    MissingBarcode,
    OrphanedUnit,
    StockMismatch,
)
from retail_kernel.services.barcode_config_service import BarcodeConfigService
from retail_kernel.services.barcode_counter_service import BarcodeCounterService
from retail_kernel.services.barcode_registry_service import BarcodeRegistryService
from retail_kernel.services.coordination_bus import CoordinationBus

logger = get_logger("services.integrity")

SYSTEM_ENTITY_ID = "system"


@dataclass(frozen=True)
class ProductSyncStatus:
    """Result of one validation pass."""

    is_healthy: bool
    missing_barcodes: tuple[MissingBarcode, ...] = ()
    orphaned_units: tuple[OrphanedUnit, ...] = ()
    duplicate_serials: tuple[DuplicateSerial, ...] = ()
    inconsistent_flags: tuple[InconsistentFlag, ...] = ()
    stock_mismatches: tuple[StockMismatch, ...] = ()
    last_sync_time: datetime | None = None
    error: str | None = None

    @property
    def issue_count(self) -> int:
        return (
            len(self.missing_barcodes)
            + len(self.orphaned_units)
            + len(self.duplicate_serials)
            + len(self.inconsistent_flags)
            + len(self.stock_mismatches)
        )


@dataclass(frozen=True)
class IntegrityFixResult:
    fixed_barcodes: int = 0
    fixed_flags: int = 0
    fixed_units: int = 0
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def total_fixed(self) -> int:
        return self.fixed_barcodes + self.fixed_flags + self.fixed_units


class ProductIntegrityService:
    """Validation and reconciliation of the product catalog."""

    def __init__(
        self,
        session: Session,
        registry: BarcodeRegistryService,
        bus: CoordinationBus,
        clock: Clock | None = None,
    ):
        self.session = session
        self._registry = registry
        self._bus = bus
        self._clock = clock or SystemClock()
        self._selector = CatalogSelector(session)
        self._last_sync_time: datetime | None = None

    @property
    def last_sync_time(self) -> datetime | None:
        return self._last_sync_time

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_product_integrity(self) -> ProductSyncStatus:
        """Run every detection query and report the findings."""
        savepoint = self.session.begin_nested()
        try:
            missing = tuple(self._selector.missing_barcodes())
            orphaned = tuple(self._selector.orphaned_units())
            duplicates = tuple(self._selector.duplicate_serials())
            flags = tuple(self._selector.inconsistent_flags())
            stock = tuple(self._selector.stock_mismatches())
            savepoint.commit()
        except SQLAlchemyError as exc:
            savepoint.rollback()
            logger.exception("integrity_validation_failed")
            return ProductSyncStatus(
                is_healthy=False,
                last_sync_time=self._last_sync_time,
                error=str(exc),
            )

        self._last_sync_time = self._clock.now()
        status = ProductSyncStatus(
            is_healthy=not (missing or orphaned or duplicates or flags or stock),
            missing_barcodes=missing,
            orphaned_units=orphaned,
            duplicate_serials=duplicates,
            inconsistent_flags=flags,
            stock_mismatches=stock,
            last_sync_time=self._last_sync_time,
        )

        log = logger.info if status.is_healthy else logger.warning
        log(
            "integrity_validated",
            extra={
                "is_healthy": status.is_healthy,
                "missing_barcodes": len(missing),
                "orphaned_units": len(orphaned),
                "duplicate_serials": len(duplicates),
                "inconsistent_flags": len(flags),
                "stock_mismatches": len(stock),
            },
        )
        return status

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def _current_row(self, model: type, entity_id: str, fix: str) -> Any:
        """Row behind a finding, or None if it was deleted since detection."""
        row = self.session.get(model, UUID(entity_id))
        if row is None:
            logger.warning(
                "integrity_fix_skipped",
                extra={"fix": fix, "entity_id": entity_id, "reason": "row_deleted"},
            )
        return row

    def _repair_barcode(self, finding: MissingBarcode) -> bool:
        if finding.entity_type is EntityType.PRODUCT:
            row = self._current_row(Product, finding.entity_id, "barcode")
            if row is None:
                return False
            barcode_type = BarcodeType.PRODUCT
            metadata: dict[str, Any] = {"reconciled": True}
        else:
            row = self._current_row(ProductUnit, finding.entity_id, "barcode")
            if row is None:
                return False
            barcode_type = BarcodeType.UNIT
            metadata = {"reconciled": True, "product_id": str(row.product_id)}

        if row.barcode and self._registry.validate_barcode_uniqueness(row.barcode):
            # Row already carries a barcode the registry lost track of.
            self._registry.register_barcode(
                row.barcode, barcode_type, finding.entity_type, finding.entity_id, metadata
            )
        else:
            row.barcode = self._registry.generate_unique_barcode(
                finding.entity_type, finding.entity_id, barcode_type, metadata
            )
        self.session.flush()
        return True

    def _in_savepoint(
        self, fn: Callable[[], bool], what: str, entity_id: str
    ) -> bool | None:
        """Result of ``fn`` (False: skipped), or None when the fix failed."""
        savepoint = self.session.begin_nested()
        try:
            applied = fn()
            savepoint.commit()
            return applied
        except (RetailKernelError, SQLAlchemyError):
            savepoint.rollback()
            logger.exception(
                "integrity_fix_failed", extra={"fix": what, "entity_id": entity_id}
            )
            return None

    def fix_product_integrity_issues(self) -> IntegrityFixResult:
        """
        Repair missing barcodes, has_serial flags and serialized stock.

        Orphaned units and duplicate serials need a human decision and are
        left untouched.
        """
        errors: list[str] = []
        fixed_barcodes = fixed_flags = fixed_units = 0

        for finding in self._selector.missing_barcodes():
            # The registry guards its own insert; the counter value of a
            # failed repair is consumed so the next repair gets a fresh one.
            try:
                if self._repair_barcode(finding):
                    fixed_barcodes += 1
            except (RetailKernelError, SQLAlchemyError):
                logger.exception(
                    "integrity_fix_failed",
                    extra={"fix": "barcode", "entity_id": finding.entity_id},
                )
                errors.append(f"barcode:{finding.entity_id}")

        for flag in self._selector.inconsistent_flags():

            def fix_flag(flag: InconsistentFlag = flag) -> bool:
                product = self._current_row(Product, flag.product_id, "has_serial")
                if product is None:
                    return False
                product.has_serial = flag.expected_has_serial
                self.session.flush()
                return True

            applied = self._in_savepoint(fix_flag, "has_serial", flag.product_id)
            if applied:
                fixed_flags += 1
                self._bus.notify(
                    CoordinationEventType.PRODUCT_UPDATED,
                    EventSource.INVENTORY,
                    flag.product_id,
                    hasSerial=flag.expected_has_serial,
                )
            elif applied is None:
                errors.append(f"has_serial:{flag.product_id}")

        for mismatch in self._selector.stock_mismatches():

            def fix_stock(mismatch: StockMismatch = mismatch) -> bool:
                product = self._current_row(Product, mismatch.product_id, "stock")
                if product is None:
                    return False
                product.stock = mismatch.available_units
                self.session.flush()
                return True

            applied = self._in_savepoint(fix_stock, "stock", mismatch.product_id)
            if applied:
                fixed_units += 1
                self._bus.notify(
                    CoordinationEventType.STOCK_UPDATED,
                    EventSource.INVENTORY,
                    mismatch.product_id,
                    stock=mismatch.available_units,
                    previousStock=mismatch.recorded_stock,
                )
            elif applied is None:
                errors.append(f"stock:{mismatch.product_id}")

        result = IntegrityFixResult(
            fixed_barcodes=fixed_barcodes,
            fixed_flags=fixed_flags,
            fixed_units=fixed_units,
            errors=tuple(errors),
        )
        logger.info(
            "integrity_fixed",
            extra={
                "fixed_barcodes": fixed_barcodes,
                "fixed_flags": fixed_flags,
                "fixed_units": fixed_units,
                "errors": len(errors),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Coordination / health
    # ------------------------------------------------------------------

    def request_sync(self, source: EventSource | str = EventSource.INVENTORY) -> CoordinationEvent:
        """
        Ask every subscriber to refetch its views.

        Call after the current transaction has committed: a FullSyncHandler
        on the bus opens its own session.
        """
        return self._bus.notify(
            CoordinationEventType.SYNC_REQUESTED, source, SYSTEM_ENTITY_ID
        )

    def get_health_status(self) -> dict[str, Any]:
        """Summary for dashboards: healthy, degraded (issues found) or unhealthy."""
        status = self.validate_product_integrity()
        if status.error is not None:
            overall = "unhealthy"
        elif status.is_healthy:
            overall = "healthy"
        else:
            overall = "degraded"
        return {
            "status": overall,
            "issue_count": status.issue_count,
            "details": {
                "missing_barcodes": len(status.missing_barcodes),
                "orphaned_units": len(status.orphaned_units),
                "duplicate_serials": len(status.duplicate_serials),
                "inconsistent_flags": len(status.inconsistent_flags),
                "stock_mismatches": len(status.stock_mismatches),
                "error": status.error,
            },
            "last_sync_time": status.last_sync_time,
        }


class FullSyncHandler:
    """
    Bus listener that reconciles the catalog in its own session.

    Reacts to ``sync_requested`` only: fix then validate, commit, keep the
    status.  Catalog events are emitted before the emitter commits, so a
    second session could neither see those rows nor, on SQLite, take the
    write lock; the handler leaves them to the emitter's own transaction.

    ``request_sync`` must therefore be called outside an open write
    transaction on the same database.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        bus: CoordinationBus,
        clock: Clock | None = None,
        default_config: BarcodeConfig | None = None,
    ):
        self._session_factory = session_factory
        self._bus = bus
        self._clock = clock or SystemClock()
        self._default_config = default_config or BarcodeConfig.default()
        self._unsubscribe: Callable[[], None] | None = None
        self.last_status: ProductSyncStatus | None = None
        self.last_fix: IntegrityFixResult | None = None

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    def subscribe(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.add_event_listener(self)

    def unsubscribe(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __call__(self, event: CoordinationEvent) -> None:
        if event.type is CoordinationEventType.SYNC_REQUESTED:
            self.run_full_sync()

    def _services(self, session: Session) -> ProductIntegrityService:
        registry = BarcodeRegistryService(
            session,
            self._bus,
            self._clock,
            config_service=BarcodeConfigService(session, self._default_config),
            counter_service=BarcodeCounterService(
                session, self._default_config.counters
            ),
        )
        return ProductIntegrityService(session, registry, self._bus, self._clock)

    def run_full_sync(self) -> ProductSyncStatus:
        with LogContext.bind(operation="full_sync"):
            with session_scope(self._session_factory) as session:
                service = self._services(session)
                self.last_fix = service.fix_product_integrity_issues()
                self.last_status = service.validate_product_integrity()
            logger.info(
                "full_sync_completed",
                extra={
                    "is_healthy": self.last_status.is_healthy,
                    "total_fixed": self.last_fix.total_fixed,
                },
            )
        return self.last_status

    def ensure_unit_product_consistency(self, unit_id: str) -> bool:
        """
        Set ``has_serial`` on the parent of a committed unit.

        For units written outside ProductUnitCoordinator (imports, manual
        edits).  Call after the writer has committed.  True when the parent
        product had to be updated.
        """
        try:
            key = UUID(str(unit_id))
        except ValueError:
            logger.warning("unit_id_malformed", extra={"unit_id": unit_id})
            return False

        with session_scope(self._session_factory) as session:
            unit = session.get(ProductUnit, key)
            if unit is None:
                logger.debug("unit_not_visible", extra={"unit_id": str(key)})
                return False
            product_id = unit.product_id
            product = session.get(Product, product_id)
            if product is None or product.has_serial:
                return False
            product.has_serial = True
            session.flush()

        logger.info(
            "unit_product_flag_repaired",
            extra={"unit_id": str(key), "product_id": str(product_id)},
        )
        return True
