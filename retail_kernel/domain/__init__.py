"""Pure domain layer: barcode format, configuration, events and time."""

from retail_kernel.domain.barcode_config import BarcodeConfig
from retail_kernel.domain.barcode_format import (
    FORMAT_CODE128,
    BarcodeType,
    BarcodeValidationResult,
    EntityType,
    ParsedBarcode,
    compose_barcode,
    parse_barcode_info,
    validate_code128,
)
from retail_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from retail_kernel.domain.events import (
    CoordinationEvent,
    CoordinationEventType,
    EventSource,
)

__all__ = [
    "BarcodeConfig",
    "BarcodeType",
    "BarcodeValidationResult",
    "Clock",
    "CoordinationEvent",
    "CoordinationEventType",
    "DeterministicClock",
    "EntityType",
    "EventSource",
    "FORMAT_CODE128",
    "ParsedBarcode",
    "SystemClock",
    "compose_barcode",
    "parse_barcode_info",
    "validate_code128",
]
