"""
Settings schema (``retail_config.schema``).

Frozen dataclasses describing everything a deployment can configure: the
database connection, logging, and the barcode defaults used until a
``barcode_config`` row exists in ``company_settings``.  Pure data, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from retail_kernel.domain.barcode_config import DEFAULT_COUNTER_START, DEFAULT_PREFIX
from retail_kernel.domain.barcode_format import FORMAT_CODE128


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///retail.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10
    pool_pre_ping: bool = True
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_timeout: float = 30.0


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class BarcodeDefaults:
    """Fallback barcode configuration and counter seeds."""

    prefix: str = DEFAULT_PREFIX
    format: str = FORMAT_CODE128
    unit_counter_start: int = DEFAULT_COUNTER_START
    product_counter_start: int = DEFAULT_COUNTER_START


@dataclass(frozen=True)
class RetailSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    barcode: BarcodeDefaults = field(default_factory=BarcodeDefaults)
