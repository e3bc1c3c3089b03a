"""
retail_config -- single public entrypoint for deployment settings.

Responsibility:
    ``get_settings()`` returns a frozen ``RetailSettings`` built from an
    optional YAML file plus RETAIL_* environment overrides.

Architecture position:
    Configuration.  Sits beside ``retail_kernel``; the kernel never imports
    from here.  ``retail_services.context.RetailContext`` translates settings
    into an engine, logging and barcode defaults.

Failure modes:
    - ``FileNotFoundError`` -- an explicit path that does not exist.
    - ``ValueError`` -- unknown keys or a wrongly shaped section.
"""

from __future__ import annotations

import logging
from pathlib import Path

from retail_config.loader import (
    apply_env_overrides,
    compute_checksum,
    load_yaml_file,
    parse_settings,
)
from retail_config.schema import (
    BarcodeDefaults,
    DatabaseSettings,
    LoggingSettings,
    RetailSettings,
)

_logger = logging.getLogger("retail_kernel.config")


def get_settings(path: str | Path | None = None) -> RetailSettings:
    """
    Load settings.

    Args:
        path: YAML settings file.  ``None`` means built-in defaults.
    """
    if path is None:
        settings = RetailSettings()
        origin = "defaults"
    else:
        settings = parse_settings(load_yaml_file(Path(path)))
        origin = str(path)

    settings = apply_env_overrides(settings)
    _logger.info(
        "RETAIL_CONFIG_TRACE",
        extra={"config_origin": origin, "checksum": compute_checksum(settings)},
    )
    return settings


__all__ = [
    "BarcodeDefaults",
    "DatabaseSettings",
    "LoggingSettings",
    "RetailSettings",
    "compute_checksum",
    "get_settings",
]
