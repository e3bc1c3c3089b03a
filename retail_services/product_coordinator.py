"""
ProductUnitCoordinator -- single write path for products and their units.

Responsibility:
    Resolves (find-or-create) catalog products and serialized units, mints
    their barcodes through the registry, keeps ``has_serial`` and ``stock``
    in step with the units, and announces each change on the coordination
    bus so other feature areas can invalidate their views.

Architecture position:
    Services layer.  Depends on the kernel's BarcodeRegistryService,
    CatalogSelector and CoordinationBus.  Used by supplier receiving,
    inventory editing and the sales flow.

Invariants enforced:
    - A product gains ``has_serial = True`` when its first unit is created.
    - Stock of a serialized product is recounted from available units after
      every unit change; it is never incremented in Python.

Failure modes:
    - ProductNotFoundError / ProductUnitNotFoundError for unknown ids.
    - Barcode errors from the registry propagate; the caller's transaction
      decides whether the catalog write survives.

Events are emitted after flush and before the caller commits.  Listeners in
the same process see the change immediately; other sessions see it once the
caller's transaction commits.  A listener must not write through a
session of its own: on SQLite it would wait on the caller's write lock.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from retail_kernel.domain.events import CoordinationEventType, EventSource
from retail_kernel.exceptions import ProductNotFoundError, ProductUnitNotFoundError
from retail_kernel.logging_config import get_logger
from retail_kernel.models.product import Product, ProductUnit, UnitStatus
from retail_kernel.selectors.catalog_selector import CatalogSelector
from retail_kernel.services.barcode_registry_service import BarcodeRegistryService
from retail_kernel.services.coordination_bus import CoordinationBus

logger = get_logger("services.product_coordinator")


@dataclass(frozen=True)
class ProductInfo:
    """Immutable DTO for a catalog product."""

    id: UUID
    brand: str
    model: str
    barcode: str | None
    has_serial: bool
    stock: int
    threshold: int
    price: Decimal | None
    min_price: Decimal | None
    max_price: Decimal | None

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.threshold


@dataclass(frozen=True)
class UnitInfo:
    """Immutable DTO for a serialized product unit."""

    id: UUID
    product_id: UUID
    serial_number: str
    barcode: str | None
    status: UnitStatus
    color: str | None = None
    storage: str | None = None
    ram: str | None = None
    battery_level: int | None = None
    price: Decimal | None = None
    purchase_price: Decimal | None = None
    supplier_id: str | None = None


@dataclass(frozen=True)
class ProductWithUnits:
    product: ProductInfo
    units: tuple[UnitInfo, ...]

    @property
    def available_units(self) -> tuple[UnitInfo, ...]:
        return tuple(u for u in self.units if u.status is UnitStatus.AVAILABLE)


def _to_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class ProductUnitCoordinator:
    """
    Find-or-create coordinator for products and units.

    Contract:
        Methods flush but never commit.  Every returned object is a DTO.
    """

    def __init__(
        self,
        session: Session,
        registry: BarcodeRegistryService,
        bus: CoordinationBus,
    ):
        self.session = session
        self._registry = registry
        self._bus = bus
        self._selector = CatalogSelector(session)

    # ------------------------------------------------------------------
    # DTO conversion
    # ------------------------------------------------------------------

    def _product_info(self, product: Product) -> ProductInfo:
        return ProductInfo(
            id=product.id,
            brand=product.brand,
            model=product.model,
            barcode=product.barcode,
            has_serial=bool(product.has_serial),
            stock=product.stock,
            threshold=product.threshold,
            price=product.price,
            min_price=product.min_price,
            max_price=product.max_price,
        )

    def _unit_info(self, unit: ProductUnit) -> UnitInfo:
        return UnitInfo(
            id=unit.id,
            product_id=unit.product_id,
            serial_number=unit.serial_number,
            barcode=unit.barcode,
            status=UnitStatus(unit.status),
            color=unit.color,
            storage=unit.storage,
            ram=unit.ram,
            battery_level=unit.battery_level,
            price=unit.price,
            purchase_price=unit.purchase_price,
            supplier_id=unit.supplier_id,
        )

    def _load_product(self, product_id: Any) -> Product:
        key = _to_uuid(product_id)
        product = self.session.get(Product, key) if key else None
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def _load_unit(self, unit_id: Any) -> ProductUnit:
        key = _to_uuid(unit_id)
        unit = self.session.get(ProductUnit, key) if key else None
        if unit is None:
            raise ProductUnitNotFoundError(str(unit_id))
        return unit

    def _recount_stock(self, product: Product, source: EventSource | str) -> None:
        self.session.flush()
        available = self._selector.count_available_units(product.id)
        previous = product.stock
        product.stock = available
        self.session.flush()
        self._bus.notify(
            CoordinationEventType.STOCK_UPDATED,
            source,
            product.id,
            stock=available,
            previousStock=previous,
        )

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def resolve_product(
        self,
        brand: str,
        model: str,
        source: EventSource | str = EventSource.INVENTORY,
        *,
        price: Decimal | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        threshold: int = 0,
        stock: int = 0,
    ) -> tuple[ProductInfo, bool]:
        """
        Find a product by brand and model (case-insensitive) or create it.

        Returns:
            (product, is_existing).  A new product gets a product barcode
            and a ``product_created`` event.
        """
        brand = (brand or "").strip()
        model = (model or "").strip()
        if not brand or not model:
            raise ValueError("brand and model are required")

        existing = self.session.execute(
            select(Product)
            .where(
                func.lower(Product.brand) == brand.lower(),
                func.lower(Product.model) == model.lower(),
            )
            .order_by(Product.created_at)
            .limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            return self._product_info(existing), True

        product = Product(
            brand=brand,
            model=model,
            has_serial=False,
            stock=stock,
            threshold=threshold,
            price=price,
            min_price=min_price,
            max_price=max_price,
        )
        self.session.add(product)
        self.session.flush()

        product.barcode = self._registry.generate_product_barcode(
            product.id, metadata={"brand": brand, "model": model}, source=source
        )
        self.session.flush()

        logger.info(
            "product_created",
            extra={"product_id": str(product.id), "barcode": product.barcode},
        )
        self._bus.notify(
            CoordinationEventType.PRODUCT_CREATED,
            source,
            product.id,
            brand=brand,
            model=model,
            barcode=product.barcode,
        )
        return self._product_info(product), False

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    def resolve_product_unit(
        self,
        product_id: Any,
        serial_number: str,
        source: EventSource | str = EventSource.INVENTORY,
        *,
        color: str | None = None,
        storage: str | None = None,
        ram: str | None = None,
        battery_level: int | None = None,
        price: Decimal | None = None,
        purchase_price: Decimal | None = None,
        supplier_id: str | None = None,
        status: UnitStatus | str = UnitStatus.AVAILABLE,
    ) -> tuple[UnitInfo, bool]:
        """
        Find a unit by (product, serial number) or create it.

        A new unit inherits the product price when none is given, gets a
        unit barcode, flips the product's ``has_serial`` on and triggers a
        stock recount.

        Raises:
            ProductNotFoundError: product_id does not resolve.
        """
        serial_number = (serial_number or "").strip()
        if not serial_number:
            raise ValueError("serial_number is required")

        product = self._load_product(product_id)

        existing = self.session.execute(
            select(ProductUnit).where(
                ProductUnit.product_id == product.id,
                ProductUnit.serial_number == serial_number,
            )
        ).scalar_one_or_none()
        if existing is not None:
            return self._unit_info(existing), True

        unit = ProductUnit(
            product_id=product.id,
            serial_number=serial_number,
            status=UnitStatus(status).value,
            color=color,
            storage=storage,
            ram=ram,
            battery_level=battery_level,
            price=price if price is not None else product.price,
            purchase_price=purchase_price,
            supplier_id=supplier_id,
        )
        self.session.add(unit)
        self.session.flush()

        unit.barcode = self._registry.generate_unit_barcode(
            unit.id,
            metadata={"product_id": str(product.id), "serial_number": serial_number},
            source=source,
        )
        product.has_serial = True
        self.session.flush()

        logger.info(
            "product_unit_created",
            extra={
                "unit_id": str(unit.id),
                "product_id": str(product.id),
                "barcode": unit.barcode,
            },
        )
        self._bus.notify(
            CoordinationEventType.UNIT_CREATED,
            source,
            unit.id,
            productId=str(product.id),
            serialNumber=serial_number,
            barcode=unit.barcode,
        )
        self._recount_stock(product, source)
        return self._unit_info(unit), False

    def update_unit_status(
        self,
        unit_id: Any,
        status: UnitStatus | str,
        source: EventSource | str = EventSource.INVENTORY,
    ) -> UnitInfo:
        """
        Change a unit's status and recount its product's stock.

        Raises:
            ProductUnitNotFoundError: unit_id does not resolve.
        """
        status = UnitStatus(status)
        unit = self._load_unit(unit_id)
        previous = UnitStatus(unit.status)
        unit.status = status.value
        self.session.flush()

        self._bus.notify(
            CoordinationEventType.UNIT_UPDATED,
            source,
            unit.id,
            productId=str(unit.product_id),
            status=status.value,
            previousStatus=previous.value,
        )

        product = self.session.get(Product, unit.product_id)
        if product is not None:
            self._recount_stock(product, source)
        else:
            logger.warning(
                "unit_status_orphaned",
                extra={"unit_id": str(unit.id), "product_id": str(unit.product_id)},
            )
        return self._unit_info(unit)

    def get_product_with_units(self, product_id: Any) -> ProductWithUnits:
        product = self._load_product(product_id)
        units = self.session.execute(
            select(ProductUnit)
            .where(ProductUnit.product_id == product.id)
            .order_by(ProductUnit.serial_number)
        ).scalars().all()
        return ProductWithUnits(
            product=self._product_info(product),
            units=tuple(self._unit_info(u) for u in units),
        )
