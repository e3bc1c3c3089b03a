"""Selectors for the retail kernel (read side)."""

from retail_kernel.selectors.base import BaseSelector
from retail_kernel.selectors.catalog_selector import (
    CatalogSelector,
    DuplicateSerial,
    InconsistentFlag,
    MissingBarcode,
    OrphanedUnit,
    StockMismatch,
)

__all__ = [
    "BaseSelector",
    "CatalogSelector",
    "DuplicateSerial",
    "InconsistentFlag",
    "MissingBarcode",
    "OrphanedUnit",
    "StockMismatch",
]
