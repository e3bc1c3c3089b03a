"""
End-to-end: catalog writes, drift, and FullSyncHandler reconciliation
through RetailContext, with real commits.
"""

import time
from uuid import uuid4

import pytest

from retail_config import RetailSettings
from retail_config.schema import BarcodeDefaults, DatabaseSettings
from retail_kernel.db.engine import session_scope
from retail_kernel.models.product import Product, ProductUnit
from retail_services.context import RetailContext, barcode_defaults
from retail_services.integrity_service import FullSyncHandler
from retail_services.inventory_cache import InventoryViewCache


@pytest.fixture
def context(session_factory, bus, clock):
    return RetailContext(
        settings=RetailSettings(),
        session_factory=session_factory,
        bus=bus,
        clock=clock,
    )


class TestFullSyncHandler:

    def test_sync_request_repairs_committed_drift(self, context, session_factory):
        with session_scope(session_factory) as session:
            product = Product(brand="Apple", model="iPhone 15", has_serial=True, stock=3)
            session.add(product)
            session.flush()
            product_id = product.id

        handler = context.start_full_sync()
        try:
            with context.session_scope() as session:
                context.integrity(session).request_sync()
        finally:
            handler.unsubscribe()

        assert handler.last_fix.fixed_barcodes == 1
        assert handler.last_fix.fixed_flags == 1
        assert handler.last_status.is_healthy is True

        with session_scope(session_factory) as session:
            repaired = session.get(Product, product_id)
            assert repaired.has_serial is False
            assert repaired.barcode == "GPMSP001001"

    def test_committed_unit_sets_parent_flag(self, session_factory, bus, clock):
        with session_scope(session_factory) as session:
            product = Product(brand="Apple", model="iPad", has_serial=False, stock=0)
            session.add(product)
            session.flush()
            unit = ProductUnit(product_id=product.id, serial_number="SN-1", status="available")
            session.add(unit)
            session.flush()
            product_id, unit_id = product.id, unit.id

        handler = FullSyncHandler(session_factory, bus, clock)

        assert handler.ensure_unit_product_consistency(unit_id) is True
        assert handler.ensure_unit_product_consistency(unit_id) is False
        with session_scope(session_factory) as session:
            assert session.get(Product, product_id).has_serial is True

    def test_unit_events_do_not_open_a_session(self, bus, clock):
        opened = []
        handler = FullSyncHandler(lambda: opened.append(1), bus, clock)
        handler.subscribe()

        bus.notify("unit_created", "supplier", uuid4(), productId=str(uuid4()))
        bus.notify("unit_updated", "sales", uuid4())
        handler.unsubscribe()

        assert opened == []

    def test_unit_creation_with_full_sync_subscribed(self, context, captured_logs):
        handler = context.start_full_sync()
        started = time.monotonic()
        try:
            with context.session_scope() as session:
                coordinator = context.coordinator(session)
                product, _ = coordinator.resolve_product("Samsung", "Galaxy S24")
                unit, _ = coordinator.resolve_product_unit(product.id, "SN-GS-1")
        finally:
            handler.unsubscribe()
        elapsed = time.monotonic() - started

        assert elapsed < 5
        assert not [
            r for r in captured_logs() if r["message"] == "coordination_listener_failed"
        ]
        with context.session_scope() as session:
            view = context.coordinator(session).get_product_with_units(product.id)
        assert [u.id for u in view.units] == [unit.id]
        assert view.product.has_serial is True

    def test_sync_log_lines_carry_operation_and_event(
        self, context, session_factory, captured_logs
    ):
        with session_scope(session_factory) as session:
            session.add(Product(brand="Apple", model="Watch", has_serial=False, stock=0))

        handler = context.start_full_sync()
        try:
            with context.session_scope() as session:
                context.integrity(session).request_sync()
        finally:
            handler.unsubscribe()

        logs = captured_logs()
        (done,) = [r for r in logs if r["message"] == "full_sync_completed"]
        assert done["operation"] == "full_sync"
        assert done["event_type"] == "sync_requested"
        (minted,) = [r for r in logs if r["message"] == "barcode_generated"]
        assert minted["operation"] == "generate_barcode"
        assert minted["barcode"] == "GPMSP001001"
        assert minted["event_type"] == "sync_requested"

    def test_unit_event_for_unknown_unit_is_ignored(self, session_factory, bus, clock):
        handler = FullSyncHandler(session_factory, bus, clock)

        assert handler.ensure_unit_product_consistency(str(uuid4())) is False
        assert handler.ensure_unit_product_consistency("not-a-uuid") is False

    def test_subscription_is_idempotent(self, session_factory, bus, clock):
        handler = FullSyncHandler(session_factory, bus, clock)

        handler.subscribe()
        handler.subscribe()
        assert bus.listener_count == 1

        handler.unsubscribe()
        assert handler.is_subscribed is False


class TestRetailContext:

    def test_catalog_flow_keeps_cache_and_integrity_in_step(self, context):
        cached = InventoryViewCache(context.bus, lambda key: key)
        cached.subscribe()

        with context.session_scope() as session:
            coordinator = context.coordinator(session)
            product, _ = coordinator.resolve_product("Google", "Pixel 8")
            cached.get(product.id)
            unit, _ = coordinator.resolve_product_unit(product.id, "SN-PX-1")
            coordinator.update_unit_status(unit.id, "sold", source="sales")

        assert str(product.id) not in cached

        with context.session_scope() as session:
            status = context.integrity(session).validate_product_integrity()
            view = context.coordinator(session).get_product_with_units(product.id)

        assert status.is_healthy is True
        assert view.product.stock == 0
        assert view.product.has_serial is True
        cached.unsubscribe()

    def test_settings_prefix_drives_generation(self, session_factory, bus, clock):
        settings = RetailSettings(barcode=BarcodeDefaults(prefix="SHOP", unit_counter_start=5000))
        context = RetailContext(
            settings=settings, session_factory=session_factory, bus=bus, clock=clock
        )

        with context.session_scope() as session:
            barcode = context.registry(session).generate_unit_barcode(uuid4())

        assert barcode == "SHOPU005001"

    def test_barcode_defaults(self):
        config = barcode_defaults(RetailSettings())

        assert config.prefix == "GPMS"
        assert config.to_dict()["counters"] == {"unit": 1000, "product": 1000}

    def test_from_settings_owns_its_engine(self, tmp_path, clock):
        settings = RetailSettings(
            database=DatabaseSettings(url=f"sqlite:///{tmp_path / 'shop.db'}"),
            barcode=BarcodeDefaults(prefix="SHOP"),
        )
        context = RetailContext.from_settings(settings, clock=clock)
        try:
            context.create_schema()
            with context.session_scope() as session:
                assert session.get_bind() is context.engine
                barcode = context.registry(session).generate_product_barcode(uuid4())
        finally:
            context.close()

        assert barcode == "SHOPP001001"
