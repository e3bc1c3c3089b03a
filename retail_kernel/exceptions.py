"""
Typed exception hierarchy for the retail kernel.

Every error the kernel raises is a subclass of ``RetailKernelError`` with a
machine-readable ``code`` class attribute and its context stored as
attributes, so callers catch by type and read structured data instead of
parsing messages.

    RetailKernelError (base)
    |
    +-- BarcodeError
    |   +-- DuplicateBarcodeError
    |   +-- BarcodeCounterOverflowError
    |   +-- BarcodeFormatError
    |
    +-- ConfigError
    |   +-- ConfigUnavailableError
    |   +-- InvalidBarcodeConfigError
    |
    +-- CatalogError
        +-- ProductNotFoundError
        +-- ProductUnitNotFoundError

Code                        | When Raised
----------------------------|---------------------------------------------------
DUPLICATE_BARCODE           | Barcode already present in the registry
BARCODE_COUNTER_OVERFLOW    | Counter no longer fits the fixed-width format
BARCODE_FORMAT_INVALID      | Caller asked for hard failure on a bad format
CONFIG_UNAVAILABLE          | Barcode configuration row missing or unreadable
INVALID_BARCODE_CONFIG      | Prefix / format rejected on update
PRODUCT_NOT_FOUND           | Product id does not resolve
PRODUCT_UNIT_NOT_FOUND      | Unit id does not resolve

Handling patterns:

    try:
        barcode = registry.generate_unique_barcode(EntityType.PRODUCT_UNIT, unit_id)
    except DuplicateBarcodeError as e:
        # Allocation lost a race or the counter was reset; retry or surface.
        log.warning("duplicate", extra={"barcode": e.barcode})

ConfigUnavailableError is normally recovered inside the kernel by falling back
to the built-in default configuration; it only escapes from
``BarcodeConfigService.load_config()``.
"""


class RetailKernelError(Exception):
    """
    Base exception for all retail kernel errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "RETAIL_KERNEL_ERROR"


# Barcode exceptions


class BarcodeError(RetailKernelError):
    """Base exception for barcode allocation and registry errors."""

    code: str = "BARCODE_ERROR"


class DuplicateBarcodeError(BarcodeError):
    """Barcode is already registered to some entity."""

    code: str = "DUPLICATE_BARCODE"

    def __init__(self, barcode: str):
        self.barcode = barcode
        super().__init__(f"Barcode '{barcode}' already exists in the registry")


class BarcodeCounterOverflowError(BarcodeError):
    """Allocated counter does not fit the fixed-width numeric part."""

    code: str = "BARCODE_COUNTER_OVERFLOW"

    def __init__(self, barcode_type: str, counter: int, max_counter: int):
        self.barcode_type = barcode_type
        self.counter = counter
        self.max_counter = max_counter
        super().__init__(
            f"Counter {counter} for '{barcode_type}' exceeds maximum {max_counter}"
        )


class BarcodeFormatError(BarcodeError):
    """Barcode failed format validation where the caller required it to pass."""

    code: str = "BARCODE_FORMAT_INVALID"

    def __init__(self, barcode: object, errors: list[str]):
        self.barcode = barcode
        self.errors = list(errors)
        super().__init__(
            f"Invalid barcode {barcode!r}: {'; '.join(self.errors)}"
        )


# Configuration exceptions


class ConfigError(RetailKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class ConfigUnavailableError(ConfigError):
    """Configuration could not be read from the store."""

    code: str = "CONFIG_UNAVAILABLE"

    def __init__(self, setting_key: str, reason: str):
        self.setting_key = setting_key
        self.reason = reason
        super().__init__(f"Configuration '{setting_key}' unavailable: {reason}")


class InvalidBarcodeConfigError(ConfigError):
    """Barcode configuration value rejected."""

    code: str = "INVALID_BARCODE_CONFIG"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid barcode config field '{field}': {reason}")


# Catalog exceptions


class CatalogError(RetailKernelError):
    """Base exception for product catalog errors."""

    code: str = "CATALOG_ERROR"


class ProductNotFoundError(CatalogError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ProductUnitNotFoundError(CatalogError):
    """Product unit with given ID was not found."""

    code: str = "PRODUCT_UNIT_NOT_FOUND"

    def __init__(self, unit_id: str):
        self.unit_id = unit_id
        super().__init__(f"Product unit not found: {unit_id}")
