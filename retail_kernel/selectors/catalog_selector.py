"""
Catalog integrity selector.

Provides read-only detection queries over products, product units and the
barcode registry.  Each query answers one question about drift between
catalog rows written by independently deployed feature areas.

Key design decisions:
- Returns DTOs (frozen dataclasses), not ORM models
- Uses the caller's Session; one validation pass sees one snapshot when the
  caller runs it in a single transaction
- Detection is set-based SQL (NOT EXISTS / GROUP BY), never row-by-row
  Python loops over the whole catalog
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import and_, exists, func, select
from sqlalchemy.orm import Session

from retail_kernel.domain.barcode_format import EntityType
from retail_kernel.models.barcode import BarcodeRecord
from retail_kernel.models.product import Product, ProductUnit, UnitStatus
from retail_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class MissingBarcode:
    """A product or unit with no registry record."""

    entity_type: EntityType
    entity_id: str
    label: str


@dataclass(frozen=True)
class OrphanedUnit:
    """A unit whose product_id does not resolve to a product."""

    unit_id: str
    product_id: str
    serial_number: str


@dataclass(frozen=True)
class DuplicateSerial:
    """A serial number carried by more than one unit."""

    serial_number: str
    unit_ids: tuple[str, ...]

    @property
    def count(self) -> int:
        return len(self.unit_ids)


@dataclass(frozen=True)
class InconsistentFlag:
    """A product whose has_serial disagrees with its unit count."""

    product_id: str
    has_serial: bool
    unit_count: int

    @property
    def expected_has_serial(self) -> bool:
        return self.unit_count > 0


@dataclass(frozen=True)
class StockMismatch:
    """A serialized product whose stock differs from its available units."""

    product_id: str
    recorded_stock: int
    available_units: int


class CatalogSelector(BaseSelector[Product]):
    """Selector for catalog integrity queries."""

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def count_units(self, product_id: UUID, status: UnitStatus | None = None) -> int:
        stmt = select(func.count(ProductUnit.id)).where(
            ProductUnit.product_id == product_id
        )
        if status is not None:
            stmt = stmt.where(ProductUnit.status == UnitStatus(status).value)
        return self.session.execute(stmt).scalar_one()

    def count_available_units(self, product_id: UUID) -> int:
        return self.count_units(product_id, UnitStatus.AVAILABLE)

    # ------------------------------------------------------------------
    # Drift detection
    # ------------------------------------------------------------------

    def products_missing_barcodes(self) -> list[MissingBarcode]:
        registered = exists().where(
            and_(
                BarcodeRecord.entity_type == EntityType.PRODUCT.value,
                BarcodeRecord.entity_id == Product.id,
            )
        )
        rows = self.session.execute(
            select(Product.id, Product.brand, Product.model)
            .where(~registered)
            .order_by(Product.brand, Product.model, Product.id)
        ).all()
        return [
            MissingBarcode(
                entity_type=EntityType.PRODUCT,
                entity_id=str(product_id),
                label=f"{brand} {model}",
            )
            for product_id, brand, model in rows
        ]

    def units_missing_barcodes(self) -> list[MissingBarcode]:
        registered = exists().where(
            and_(
                BarcodeRecord.entity_type == EntityType.PRODUCT_UNIT.value,
                BarcodeRecord.entity_id == ProductUnit.id,
            )
        )
        rows = self.session.execute(
            select(ProductUnit.id, ProductUnit.serial_number)
            .where(~registered)
            .order_by(ProductUnit.serial_number, ProductUnit.id)
        ).all()
        return [
            MissingBarcode(
                entity_type=EntityType.PRODUCT_UNIT,
                entity_id=str(unit_id),
                label=serial_number,
            )
            for unit_id, serial_number in rows
        ]

    def missing_barcodes(self) -> list[MissingBarcode]:
        """Products first, then units."""
        return self.products_missing_barcodes() + self.units_missing_barcodes()

    def orphaned_units(self) -> list[OrphanedUnit]:
        parent = exists().where(Product.id == ProductUnit.product_id)
        rows = self.session.execute(
            select(ProductUnit.id, ProductUnit.product_id, ProductUnit.serial_number)
            .where(~parent)
            .order_by(ProductUnit.serial_number)
        ).all()
        return [
            OrphanedUnit(
                unit_id=str(unit_id),
                product_id=str(product_id),
                serial_number=serial_number,
            )
            for unit_id, product_id, serial_number in rows
        ]

    def duplicate_serials(self) -> list[DuplicateSerial]:
        dupes = (
            select(ProductUnit.serial_number)
            .group_by(ProductUnit.serial_number)
            .having(func.count(ProductUnit.id) > 1)
        )
        rows = self.session.execute(
            select(ProductUnit.serial_number, ProductUnit.id)
            .where(ProductUnit.serial_number.in_(dupes))
            .order_by(ProductUnit.serial_number, ProductUnit.id)
        ).all()

        grouped: dict[str, list[str]] = {}
        for serial_number, unit_id in rows:
            grouped.setdefault(serial_number, []).append(str(unit_id))
        return [
            DuplicateSerial(serial_number=serial, unit_ids=tuple(ids))
            for serial, ids in grouped.items()
        ]

    def _unit_counts(self, status: UnitStatus | None = None):
        stmt = select(
            ProductUnit.product_id.label("product_id"),
            func.count(ProductUnit.id).label("unit_count"),
        ).group_by(ProductUnit.product_id)
        if status is not None:
            stmt = stmt.where(ProductUnit.status == status.value)
        return stmt.subquery()

    def inconsistent_flags(self) -> list[InconsistentFlag]:
        counts = self._unit_counts()
        unit_count = func.coalesce(counts.c.unit_count, 0)
        rows = self.session.execute(
            select(Product.id, Product.has_serial, unit_count)
            .outerjoin(counts, counts.c.product_id == Product.id)
            .where(
                ((Product.has_serial.is_(True)) & (unit_count == 0))
                | ((Product.has_serial.is_(False)) & (unit_count > 0))
            )
            .order_by(Product.id)
        ).all()
        return [
            InconsistentFlag(
                product_id=str(product_id),
                has_serial=bool(has_serial),
                unit_count=int(count),
            )
            for product_id, has_serial, count in rows
        ]

    def stock_mismatches(self) -> list[StockMismatch]:
        counts = self._unit_counts(UnitStatus.AVAILABLE)
        available = func.coalesce(counts.c.unit_count, 0)
        rows = self.session.execute(
            select(Product.id, Product.stock, available)
            .outerjoin(counts, counts.c.product_id == Product.id)
            .where(Product.has_serial.is_(True), Product.stock != available)
            .order_by(Product.id)
        ).all()
        return [
            StockMismatch(
                product_id=str(product_id),
                recorded_stock=int(stock),
                available_units=int(count),
            )
            for product_id, stock, count in rows
        ]
