"""
BarcodeConfig -- deployment-wide barcode allocation settings.

The prefix and symbology are persisted as a JSON blob in ``company_settings``;
counter values live in their own table and are merged in on read.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from retail_kernel.domain.barcode_format import FORMAT_CODE128, BarcodeType
from retail_kernel.exceptions import InvalidBarcodeConfigError

BARCODE_CONFIG_KEY = "barcode_config"

DEFAULT_PREFIX = "GPMS"
DEFAULT_COUNTER_START = 1000

_PREFIX_PATTERN = re.compile(r"^[A-Z]{2,10}$")


def validate_prefix(prefix: Any) -> str:
    """Return the prefix if it is 2-10 uppercase ASCII letters."""
    if not isinstance(prefix, str) or not _PREFIX_PATTERN.match(prefix):
        raise InvalidBarcodeConfigError(
            "prefix", f"must be 2-10 uppercase letters, got {prefix!r}"
        )
    return prefix


def validate_format(fmt: Any) -> str:
    if fmt != FORMAT_CODE128:
        raise InvalidBarcodeConfigError(
            "format", f"only {FORMAT_CODE128} is supported, got {fmt!r}"
        )
    return fmt


def _freeze_counters(counters: Mapping[Any, int]) -> Mapping[BarcodeType, int]:
    return MappingProxyType(
        {BarcodeType(key): int(value) for key, value in counters.items()}
    )


@dataclass(frozen=True)
class BarcodeConfig:
    """
    Immutable barcode configuration.

    ``counters`` maps each BarcodeType to the last issued counter value.
    """

    prefix: str
    format: str = FORMAT_CODE128
    counters: Mapping[BarcodeType, int] = field(
        default_factory=lambda: _freeze_counters(
            {BarcodeType.UNIT: DEFAULT_COUNTER_START, BarcodeType.PRODUCT: DEFAULT_COUNTER_START}
        )
    )

    def __post_init__(self) -> None:
        validate_prefix(self.prefix)
        validate_format(self.format)
        object.__setattr__(self, "counters", _freeze_counters(self.counters))

    @classmethod
    def default(cls) -> BarcodeConfig:
        return cls(prefix=DEFAULT_PREFIX)

    @classmethod
    def from_setting(
        cls,
        value: Mapping[str, Any],
        counters: Mapping[Any, int] | None = None,
    ) -> BarcodeConfig:
        """Build from the stored JSON blob plus the counter table values."""
        merged = {
            BarcodeType.UNIT: DEFAULT_COUNTER_START,
            BarcodeType.PRODUCT: DEFAULT_COUNTER_START,
        }
        for key, val in (value.get("counters") or {}).items():
            merged[BarcodeType(key)] = int(val)
        for key, val in (counters or {}).items():
            merged[BarcodeType(key)] = int(val)
        return cls(
            prefix=value["prefix"],
            format=value.get("format", FORMAT_CODE128),
            counters=merged,
        )

    def to_setting(self) -> dict[str, Any]:
        """JSON blob persisted in company_settings (counters excluded)."""
        return {"prefix": self.prefix, "format": self.format}

    def to_dict(self) -> dict[str, Any]:
        return {
            "prefix": self.prefix,
            "format": self.format,
            "counters": {k.value: v for k, v in self.counters.items()},
        }
