"""
BarcodeConfigService -- read and update the persisted barcode configuration.

Responsibility:
    Reads the ``barcode_config`` row from ``company_settings`` and merges in
    the live counter values.  When the row is missing or unreadable the
    built-in default (prefix GPMS, CODE128, counters 1000/1000) is used so
    allocation never hard-fails on configuration.

Failure modes:
    - ConfigUnavailableError from load_config(); get_config() recovers from
      it and logs ``barcode_config_fallback`` at WARNING.
    - InvalidBarcodeConfigError from update_config() on a bad prefix/format.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from retail_kernel.domain.barcode_config import (
    BARCODE_CONFIG_KEY,
    BarcodeConfig,
    validate_format,
    validate_prefix,
)
from retail_kernel.domain.barcode_format import FORMAT_CODE128, BarcodeType
from retail_kernel.exceptions import ConfigUnavailableError, InvalidBarcodeConfigError
from retail_kernel.logging_config import get_logger
from retail_kernel.models.settings import BarcodeCounter, CompanySetting
from retail_kernel.services.base import BaseService

logger = get_logger("services.barcode_config")


class BarcodeConfigService(BaseService[CompanySetting]):
    """
    Barcode configuration access.

    Contract:
        ``get_config()`` always returns a usable BarcodeConfig.
        ``load_config()`` returns the stored one or raises.
    """

    def __init__(
        self,
        session: Session,
        default_config: BarcodeConfig | None = None,
    ):
        super().__init__(session)
        self._default = default_config or BarcodeConfig.default()

    @property
    def default_config(self) -> BarcodeConfig:
        return self._default

    def _stored_counters(self) -> dict[BarcodeType, int]:
        rows = self.session.execute(
            select(BarcodeCounter.name, BarcodeCounter.current_value)
        ).all()
        counters: dict[BarcodeType, int] = {}
        for name, value in rows:
            try:
                counters[BarcodeType(name)] = value
            except ValueError:
                logger.warning("unknown_barcode_counter", extra={"counter_name": name})
        return counters

    def _get_setting(self) -> CompanySetting | None:
        return self.session.execute(
            select(CompanySetting).where(CompanySetting.setting_key == BARCODE_CONFIG_KEY)
        ).scalar_one_or_none()

    def load_config(self) -> BarcodeConfig:
        """
        Read the stored configuration.

        Raises:
            ConfigUnavailableError: row missing, malformed, or unreadable.
        """
        try:
            setting = self._get_setting()
            counters = self._stored_counters()
        except SQLAlchemyError as exc:
            raise ConfigUnavailableError(BARCODE_CONFIG_KEY, str(exc)) from exc

        if setting is None:
            raise ConfigUnavailableError(BARCODE_CONFIG_KEY, "setting not found")

        merged_start = dict(self._default.counters)
        merged_start.update(counters)
        try:
            return BarcodeConfig.from_setting(setting.setting_value, merged_start)
        except (AttributeError, KeyError, TypeError, ValueError, InvalidBarcodeConfigError) as exc:
            raise ConfigUnavailableError(
                BARCODE_CONFIG_KEY, f"malformed setting: {exc}"
            ) from exc

    def get_config(self) -> BarcodeConfig:
        """Stored configuration, or the default one if it cannot be read."""
        try:
            return self.load_config()
        except ConfigUnavailableError as exc:
            logger.warning(
                "barcode_config_fallback",
                extra={"reason": exc.reason, "prefix": self._default.prefix},
            )
            return self._default

    def update_config(
        self,
        prefix: str,
        fmt: str = FORMAT_CODE128,
    ) -> BarcodeConfig:
        """
        Persist prefix and format.  Counters are never written through here.

        Raises:
            InvalidBarcodeConfigError: prefix or format rejected.
        """
        validate_prefix(prefix)
        validate_format(fmt)

        setting = self._get_setting()
        value = {"prefix": prefix, "format": fmt}
        if setting is None:
            self.session.add(
                CompanySetting(setting_key=BARCODE_CONFIG_KEY, setting_value=value)
            )
        else:
            setting.setting_value = value
        self.session.flush()

        logger.info("barcode_config_updated", extra={"prefix": prefix, "format": fmt})
        return self.load_config()
