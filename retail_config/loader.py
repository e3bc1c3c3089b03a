"""
Settings loader (``retail_config.loader``).

Responsibility
--------------
Reads a YAML settings file, parses it into ``retail_config.schema``
dataclasses and applies environment overrides.  Callers use
``retail_config.get_settings()``; the functions here are its building blocks
and test tooling.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown keys are rejected with ``ValueError`` instead of being ignored.
* Environment overrides win over file values.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong section shape or unknown key  -> ``ValueError``.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from retail_config.schema import (
    BarcodeDefaults,
    DatabaseSettings,
    LoggingSettings,
    RetailSettings,
)

ENV_DATABASE_URL = "RETAIL_DATABASE_URL"
ENV_LOG_LEVEL = "RETAIL_LOG_LEVEL"
ENV_BARCODE_PREFIX = "RETAIL_BARCODE_PREFIX"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_section(cls: type, data: Any, section: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Section '{section}' must be a mapping, got {type(data).__name__}")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {', '.join(unknown)}")
    return cls(**data)


def parse_settings(data: Mapping[str, Any]) -> RetailSettings:
    """Parse a settings dict (as loaded from YAML) into RetailSettings."""
    unknown = sorted(set(data) - {"database", "logging", "barcode"})
    if unknown:
        raise ValueError(f"Unknown settings sections: {', '.join(unknown)}")

    barcode = _parse_section(BarcodeDefaults, data.get("barcode"), "barcode")
    # YAML reads an unquoted prefix of digits or yes/no as non-strings.
    if not isinstance(barcode.prefix, str):
        raise ValueError(f"barcode.prefix must be a string, got {barcode.prefix!r}")

    return RetailSettings(
        database=_parse_section(DatabaseSettings, data.get("database"), "database"),
        logging=_parse_section(LoggingSettings, data.get("logging"), "logging"),
        barcode=barcode,
    )


def apply_env_overrides(
    settings: RetailSettings,
    environ: Mapping[str, str] | None = None,
) -> RetailSettings:
    """Return ``settings`` with RETAIL_* environment variables applied."""
    env = os.environ if environ is None else environ

    database = settings.database
    if env.get(ENV_DATABASE_URL):
        database = dataclasses.replace(database, url=env[ENV_DATABASE_URL])

    logging_settings = settings.logging
    if env.get(ENV_LOG_LEVEL):
        logging_settings = dataclasses.replace(
            logging_settings, level=env[ENV_LOG_LEVEL].upper()
        )

    barcode = settings.barcode
    if env.get(ENV_BARCODE_PREFIX):
        barcode = dataclasses.replace(barcode, prefix=env[ENV_BARCODE_PREFIX])

    return RetailSettings(database=database, logging=logging_settings, barcode=barcode)


def log_level(settings: RetailSettings) -> int:
    """Numeric logging level for ``settings.logging.level``."""
    level = logging.getLevelName(settings.logging.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {settings.logging.level!r}")
    return level


def compute_checksum(settings: RetailSettings) -> str:
    """Deterministic SHA-256 of the settings, database URL excluded."""
    payload = dataclasses.asdict(settings)
    payload["database"].pop("url", None)
    canonical = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
