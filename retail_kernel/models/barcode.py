"""
Module: retail_kernel.models.barcode
Responsibility: ORM persistence for the barcode registry -- the durable mapping
    from an allocated barcode string to the product or unit it identifies.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure barcode enums.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - barcode is unique system-wide (uq_barcode_registry_barcode).  The
      constraint is the duplicate signal for concurrent registrations; the
      service translates its IntegrityError into DuplicateBarcodeError.
    - entity_id is a weak reference: no foreign key, the registry does not own
      the lifecycle of products or units.

Failure modes:
    - IntegrityError on duplicate barcode.
"""

from typing import Any

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from retail_kernel.db.base import JSONBag, TrackedBase
from retail_kernel.domain.barcode_format import FORMAT_CODE128, BarcodeType, EntityType


class BarcodeRecord(TrackedBase):
    """
    One allocated, registered barcode.

    Guarantees:
        - barcode is globally unique.
        - (entity_type, entity_id) is indexed for entity lookups; more than
          one row per pair indicates drift for the integrity service to report.
    """

    __tablename__ = "barcode_registry"

    __table_args__ = (
        UniqueConstraint("barcode", name="uq_barcode_registry_barcode"),
        Index("idx_barcode_registry_entity", "entity_type", "entity_id"),
        Index("idx_barcode_registry_entity_id", "entity_id"),
    )

    barcode: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # Counter namespace (unit / product)
    barcode_type: Mapped[BarcodeType] = mapped_column(
        String(20),
        nullable=False,
    )

    entity_type: Mapped[EntityType] = mapped_column(
        String(20),
        nullable=False,
    )

    entity_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    format: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=FORMAT_CODE128,
    )

    # Free-form annotations captured at generation time (serial, color, ...)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONBag,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return f"<BarcodeRecord {self.barcode} -> {self.entity_type}:{self.entity_id}>"
