"""Cross-module catalog services built on the retail kernel."""

from retail_services.context import RetailContext
from retail_services.integrity_service import (
    FullSyncHandler,
    IntegrityFixResult,
    ProductIntegrityService,
    ProductSyncStatus,
)
from retail_services.inventory_cache import InventoryViewCache
from retail_services.product_coordinator import (
    ProductInfo,
    ProductUnitCoordinator,
    ProductWithUnits,
    UnitInfo,
)

__all__ = [
    "FullSyncHandler",
    "IntegrityFixResult",
    "InventoryViewCache",
    "ProductInfo",
    "ProductIntegrityService",
    "ProductSyncStatus",
    "ProductUnitCoordinator",
    "ProductWithUnits",
    "RetailContext",
    "UnitInfo",
]
