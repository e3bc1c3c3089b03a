"""
RetailContext -- process-wide wiring of engine, bus, clock and services.

Responsibility:
    Owns the objects that must exist exactly once per process (engine,
    session factory, coordination bus, clock) and builds per-transaction
    services on top of a caller-supplied session.

Architecture position:
    Services layer, outermost.  The only place that reads RetailSettings.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from retail_config import RetailSettings, get_settings
from retail_config.loader import log_level
from retail_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    make_session_factory,
    session_scope,
)
from retail_kernel.domain.barcode_config import BarcodeConfig
from retail_kernel.domain.barcode_format import BarcodeType
from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.logging_config import configure_logging, get_logger
from retail_kernel.services.barcode_config_service import BarcodeConfigService
from retail_kernel.services.barcode_counter_service import BarcodeCounterService
from retail_kernel.services.barcode_registry_service import BarcodeRegistryService
from retail_kernel.services.coordination_bus import CoordinationBus
from retail_services.integrity_service import FullSyncHandler, ProductIntegrityService
from retail_services.product_coordinator import ProductUnitCoordinator

logger = get_logger("services.context")


def barcode_defaults(settings: RetailSettings) -> BarcodeConfig:
    """Fallback BarcodeConfig described by ``settings.barcode``."""
    return BarcodeConfig(
        prefix=settings.barcode.prefix,
        format=settings.barcode.format,
        counters={
            BarcodeType.UNIT: settings.barcode.unit_counter_start,
            BarcodeType.PRODUCT: settings.barcode.product_counter_start,
        },
    )


@dataclass
class RetailContext:
    settings: RetailSettings
    session_factory: Callable[[], Session]
    bus: CoordinationBus
    clock: Clock
    engine: Engine | None = None

    @classmethod
    def from_settings(
        cls,
        settings: RetailSettings | None = None,
        clock: Clock | None = None,
    ) -> RetailContext:
        """Configure logging, open the engine and create the bus."""
        settings = settings or get_settings()
        configure_logging(level=log_level(settings))

        db = settings.database
        engine = create_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_pre_ping=db.pool_pre_ping,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            sqlite_timeout=db.sqlite_timeout,
        )
        clock = clock or SystemClock()
        context = cls(
            settings=settings,
            session_factory=make_session_factory(engine),
            bus=CoordinationBus(clock),
            clock=clock,
            engine=engine,
        )
        logger.info(
            "retail_context_ready",
            extra={"dialect": engine.dialect.name, "prefix": settings.barcode.prefix},
        )
        return context

    @property
    def default_barcode_config(self) -> BarcodeConfig:
        return barcode_defaults(self.settings)

    def create_schema(self) -> None:
        if self.engine is None:
            raise RuntimeError("RetailContext was built without an engine")
        create_tables(self.engine)

    def close(self) -> None:
        """Dispose the engine this context owns."""
        if self.engine is not None:
            self.engine.dispose()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        with session_scope(self.session_factory) as session:
            yield session

    def registry(self, session: Session) -> BarcodeRegistryService:
        defaults = self.default_barcode_config
        return BarcodeRegistryService(
            session,
            self.bus,
            self.clock,
            config_service=BarcodeConfigService(session, defaults),
            counter_service=BarcodeCounterService(session, defaults.counters),
        )

    def integrity(self, session: Session) -> ProductIntegrityService:
        return ProductIntegrityService(session, self.registry(session), self.bus, self.clock)

    def coordinator(self, session: Session) -> ProductUnitCoordinator:
        return ProductUnitCoordinator(session, self.registry(session), self.bus)

    def start_full_sync(self) -> FullSyncHandler:
        """Subscribe a FullSyncHandler; call ``unsubscribe()`` on it to stop."""
        handler = FullSyncHandler(
            self.session_factory, self.bus, self.clock, self.default_barcode_config
        )
        handler.subscribe()
        return handler
