"""
Tests for BarcodeRegistryService.

Covers:
- Generation for units and products (format, counters, events)
- Configuration fallback and custom prefixes
- Overflow and duplicate handling
- Lookup, uniqueness check and history
- Bulk generation with partial failure
- Health check
"""

from uuid import uuid4

import pytest

from retail_kernel.domain.barcode_format import (
    BarcodeType,
    EntityType,
    parse_barcode_info,
    validate_code128,
)
from retail_kernel.domain.events import CoordinationEventType, EventSource
from retail_kernel.exceptions import BarcodeCounterOverflowError, DuplicateBarcodeError
from retail_kernel.models.barcode import BarcodeRecord
from retail_kernel.services.barcode_config_service import BarcodeConfigService
from retail_kernel.services.barcode_counter_service import BarcodeCounterService
from retail_kernel.services.barcode_registry_service import BarcodeRegistryService


class TestGenerateUniqueBarcode:

    def test_first_unit_barcode(self, registry):
        barcode = registry.generate_unit_barcode(uuid4())

        assert barcode == "GPMSU001001"
        assert validate_code128(barcode).is_valid

    def test_first_product_barcode(self, registry):
        assert registry.generate_product_barcode(uuid4()) == "GPMSP001001"

    def test_sequential_barcodes_are_distinct(self, registry):
        barcodes = [registry.generate_unit_barcode(uuid4()) for _ in range(3)]

        assert barcodes == ["GPMSU001001", "GPMSU001002", "GPMSU001003"]

    def test_generated_barcode_parses_back(self, registry):
        parsed = parse_barcode_info(registry.generate_product_barcode(uuid4()))

        assert parsed.is_valid
        assert parsed.prefix == "GPMS"
        assert parsed.type == "product"
        assert parsed.counter == 1001

    def test_record_is_registered(self, registry):
        unit_id = uuid4()
        barcode = registry.generate_unique_barcode(
            EntityType.PRODUCT_UNIT, unit_id, metadata={"serial_number": "SN-1"}
        )

        record = registry.get_by_barcode(barcode)
        assert record.entity_type is EntityType.PRODUCT_UNIT
        assert record.entity_id == str(unit_id)
        assert record.barcode_type is BarcodeType.UNIT
        assert record.format == "CODE128"
        assert record.metadata == {"serial_number": "SN-1"}

    def test_barcode_registered_event(self, registry, recorded_events):
        unit_id = uuid4()
        product_id = uuid4()

        barcode = registry.generate_unit_barcode(
            unit_id, metadata={"product_id": str(product_id)}, source=EventSource.SUPPLIER
        )

        assert len(recorded_events) == 1
        event = recorded_events[0]
        assert event.type is CoordinationEventType.BARCODE_REGISTERED
        assert event.source is EventSource.SUPPLIER
        assert event.entity_id == str(unit_id)
        assert event.metadata["barcode"] == barcode
        assert event.product_id == str(product_id)

    def test_works_without_bus(self, session, clock):
        registry = BarcodeRegistryService(session, clock=clock)

        assert registry.generate_unit_barcode(uuid4()) == "GPMSU001001"

    @pytest.mark.parametrize("entity_id", [None, "", "   "])
    def test_empty_entity_id_rejected(self, registry, entity_id):
        with pytest.raises(ValueError):
            registry.generate_unit_barcode(entity_id)

    def test_unknown_entity_type_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.generate_unique_barcode("supplier", uuid4())


class TestConfiguration:

    def test_missing_config_falls_back_to_default_prefix(self, registry, captured_logs):
        barcode = registry.generate_unit_barcode(uuid4())

        assert barcode.startswith("GPMSU")
        assert any(r["message"] == "barcode_config_fallback" for r in captured_logs())

    def test_stored_prefix_is_used(self, session, registry):
        BarcodeConfigService(session).update_config("SHOP")

        assert registry.generate_unit_barcode(uuid4()) == "SHOPU001001"

    def test_get_config_reports_live_counters(self, registry):
        registry.generate_unit_barcode(uuid4())
        registry.generate_unit_barcode(uuid4())

        config = registry.get_config()

        assert config.counters[BarcodeType.UNIT] == 1002
        assert config.counters[BarcodeType.PRODUCT] == 1000


class TestFailures:

    def test_counter_overflow_raises_and_registers_nothing(self, session, registry):
        BarcodeCounterService(session).reset(BarcodeType.UNIT, 999_999)
        unit_id = uuid4()

        with pytest.raises(BarcodeCounterOverflowError):
            registry.generate_unit_barcode(unit_id)

        assert registry.get_barcode_by_entity(EntityType.PRODUCT_UNIT, unit_id) is None

    def test_duplicate_composed_barcode_raises(self, registry, register_existing):
        register_existing("GPMSU001001", "product_unit", uuid4())

        with pytest.raises(DuplicateBarcodeError) as exc_info:
            registry.generate_unit_barcode(uuid4())

        assert exc_info.value.barcode == "GPMSU001001"

    def test_retry_after_duplicate_gets_next_counter(self, registry, register_existing):
        register_existing("GPMSU001001", "product_unit", uuid4())
        unit_id = uuid4()

        with pytest.raises(DuplicateBarcodeError):
            registry.generate_unit_barcode(unit_id)

        assert registry.generate_unit_barcode(unit_id) == "GPMSU001002"

    def test_register_duplicate_keeps_session_usable(self, session, registry):
        registry.register_barcode("EXT00001", "product", "product", "p1")

        with pytest.raises(DuplicateBarcodeError):
            registry.register_barcode("EXT00001", "product", "product", "p2")

        assert session.query(BarcodeRecord).filter_by(barcode="EXT00001").count() == 1

    def test_duplicate_is_logged(self, registry, captured_logs):
        registry.register_barcode("EXT00002", "unit", "product_unit", "u1")

        with pytest.raises(DuplicateBarcodeError):
            registry.register_barcode("EXT00002", "unit", "product_unit", "u2")

        assert any(r["message"] == "barcode_duplicate_rejected" for r in captured_logs())


class TestLookup:

    def test_lookup_missing_entity(self, registry):
        assert registry.get_barcode_by_entity("product_unit", uuid4()) is None

    def test_lookup_is_idempotent(self, registry):
        unit_id = uuid4()
        barcode = registry.generate_unit_barcode(unit_id)

        first = registry.get_barcode_by_entity(EntityType.PRODUCT_UNIT, unit_id)
        second = registry.get_barcode_by_entity(EntityType.PRODUCT_UNIT, unit_id)

        assert first == second
        assert first.barcode == barcode

    def test_lookup_respects_entity_type(self, registry):
        entity_id = uuid4()
        registry.generate_product_barcode(entity_id)

        assert registry.get_barcode_by_entity(EntityType.PRODUCT_UNIT, entity_id) is None

    def test_get_or_generate_is_idempotent(self, session, registry):
        product_id = uuid4()

        first = registry.get_or_generate_barcode(EntityType.PRODUCT, product_id)
        second = registry.get_or_generate_barcode(EntityType.PRODUCT, product_id)

        assert first == second == "GPMSP001001"
        assert session.query(BarcodeRecord).filter_by(entity_id=str(product_id)).count() == 1

    def test_uniqueness_check(self, registry):
        barcode = registry.generate_unit_barcode(uuid4())

        assert registry.validate_barcode_uniqueness(barcode) is False
        assert registry.validate_barcode_uniqueness("GPMSU999998") is True

    def test_history_is_most_recent_first(self, registry, clock):
        unit_id = uuid4()
        first = registry.generate_unit_barcode(unit_id)
        clock.advance(60)
        second = registry.generate_unit_barcode(unit_id)

        history = registry.get_barcode_history(unit_id)

        assert [r.barcode for r in history] == [second, first]
        assert registry.get_barcode_by_entity("product_unit", unit_id).barcode == second

    def test_history_of_unknown_entity_is_empty(self, registry):
        assert registry.get_barcode_history(uuid4()) == []


class TestBulkGeneration:

    def test_all_succeed(self, registry):
        unit_ids = [uuid4() for _ in range(3)]

        result = registry.generate_bulk_unit_barcodes(unit_ids)

        assert list(result) == [str(u) for u in unit_ids]
        assert len(set(result.values())) == 3

    def test_partial_failure_excludes_failed_unit(
        self, registry, register_existing, captured_logs
    ):
        u1, u2, u3 = uuid4(), uuid4(), uuid4()
        # Taken by another writer: u2 is composed onto it.
        register_existing("GPMSU001002", "product_unit", uuid4())

        result = registry.generate_bulk_unit_barcodes([u1, u2, u3])

        assert result == {str(u1): "GPMSU001001", str(u3): "GPMSU001003"}
        failed = [r for r in captured_logs() if r["message"] == "bulk_barcode_item_failed"]
        assert len(failed) == 1
        assert failed[0]["unit_id"] == str(u2)
        assert failed[0]["exc_type"] == "DuplicateBarcodeError"

    def test_empty_batch(self, registry):
        assert registry.generate_bulk_unit_barcodes([]) == {}


class TestHealthCheck:

    def test_degraded_without_stored_config(self, registry):
        health = registry.health_check()

        assert health["status"] == "degraded"
        assert health["details"]["prefix"] == "GPMS"

    def test_healthy_with_stored_config(self, session, registry):
        BarcodeConfigService(session).update_config("SHOP")
        registry.generate_unit_barcode(uuid4())

        health = registry.health_check()

        assert health["status"] == "healthy"
        assert health["details"]["counters"] == {"unit": 1001, "product": 1000}
