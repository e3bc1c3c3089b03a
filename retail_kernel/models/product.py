"""
Module: retail_kernel.models.product
Responsibility: ORM persistence for the product catalog entries and the
    individually tracked units (serial-numbered items) that belong to them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (detected and repaired by ProductIntegrityService, not by
the ORM, since catalog rows are written by independently deployed areas):
    - has_serial is True iff at least one unit references the product.
    - stock of a serialized product equals its count of available units.
    - serial_number is unique across units.
    - every product and unit carries a registered barcode.

Notes:
    product_units.product_id deliberately has no foreign key so that units
    left behind by a product deletion are observable as orphans.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from retail_kernel.db.base import TrackedBase, UUIDString


class UnitStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    RESERVED = "reserved"
    DAMAGED = "damaged"


class Product(TrackedBase):
    """Catalog entry that may have zero or more units."""

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_brand_model", "brand", "model"),
        Index("idx_product_barcode", "barcode"),
    )

    brand: Mapped[str] = mapped_column(String(100), nullable=False)

    model: Mapped[str] = mapped_column(String(200), nullable=False)

    # Denormalized copy of the registered product barcode
    barcode: Mapped[str | None] = mapped_column(String(64), nullable=True)

    has_serial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    min_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    max_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    def __repr__(self) -> str:
        return f"<Product {self.brand} {self.model}>"


class ProductUnit(TrackedBase):
    """Individually tracked physical item belonging to a product."""

    __tablename__ = "product_units"

    __table_args__ = (
        Index("idx_product_unit_product", "product_id"),
        Index("idx_product_unit_serial", "serial_number"),
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)

    barcode: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[UnitStatus] = mapped_column(
        String(20),
        nullable=False,
        default=UnitStatus.AVAILABLE,
    )

    color: Mapped[str | None] = mapped_column(String(50), nullable=True)

    storage: Mapped[str | None] = mapped_column(String(50), nullable=True)

    ram: Mapped[str | None] = mapped_column(String(50), nullable=True)

    battery_level: Mapped[int | None] = mapped_column(Integer, nullable=True)

    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    purchase_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    supplier_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<ProductUnit {self.serial_number} ({self.status})>"
