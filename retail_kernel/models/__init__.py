"""ORM models for the retail kernel."""

from retail_kernel.models.barcode import BarcodeRecord
from retail_kernel.models.product import Product, ProductUnit, UnitStatus
from retail_kernel.models.settings import BarcodeCounter, CompanySetting


def import_all_models() -> None:
    """Ensure every model module is imported so Base.metadata is complete."""
    import retail_kernel.models.barcode  # noqa: F401
    import retail_kernel.models.product  # noqa: F401
    import retail_kernel.models.settings  # noqa: F401


__all__ = [
    "BarcodeCounter",
    "BarcodeRecord",
    "CompanySetting",
    "Product",
    "ProductUnit",
    "UnitStatus",
    "import_all_models",
]
