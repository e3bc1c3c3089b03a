"""Services for the retail kernel (write side)."""

from retail_kernel.services.barcode_config_service import BarcodeConfigService
from retail_kernel.services.barcode_counter_service import BarcodeCounterService
from retail_kernel.services.barcode_registry_service import (
    BarcodeRecordInfo,
    BarcodeRegistryService,
)
from retail_kernel.services.coordination_bus import CoordinationBus

__all__ = [
    "BarcodeConfigService",
    "BarcodeCounterService",
    "BarcodeRecordInfo",
    "BarcodeRegistryService",
    "CoordinationBus",
]
