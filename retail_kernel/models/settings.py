"""
Module: retail_kernel.models.settings
Responsibility: Persisted configuration rows -- the company settings key/value
    store and the barcode counter table.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - setting_key is unique (uq_company_setting_key).
    - barcode counter name is unique; current_value is only ever changed by a
      single atomic UPDATE (see BarcodeCounterService), never by a
      read-compute-write in application code.
"""

from typing import Any

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from retail_kernel.db.base import Base, JSONBag, TrackedBase


class CompanySetting(TrackedBase):
    """Key/value configuration blob (e.g. ``barcode_config``)."""

    __tablename__ = "company_settings"

    __table_args__ = (
        UniqueConstraint("setting_key", name="uq_company_setting_key"),
    )

    setting_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    setting_value: Mapped[dict[str, Any]] = mapped_column(
        JSONBag,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return f"<CompanySetting {self.setting_key}>"


class BarcodeCounter(Base):
    """
    Barcode counter table.

    One row per counter namespace ("unit", "product").  current_value holds
    the last issued counter.
    """

    __tablename__ = "barcode_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
