"""
Tests for CoordinationBus.

Covers:
- Delivery order (emission order, registration order)
- Listener failure isolation
- Idempotent unsubscribe
- notify() convenience
"""

from retail_kernel.domain.events import (
    CoordinationEvent,
    CoordinationEventType,
    EventSource,
)
from retail_kernel.logging_config import LogContext, get_logger
from retail_kernel.services.coordination_bus import CoordinationBus


def _event(entity_id="p1", event_type=CoordinationEventType.PRODUCT_UPDATED):
    return CoordinationEvent(type=event_type, source=EventSource.INVENTORY, entity_id=entity_id)


class TestDelivery:

    def test_listeners_called_in_registration_order(self, bus):
        calls = []
        bus.add_event_listener(lambda e: calls.append("first"))
        bus.add_event_listener(lambda e: calls.append("second"))

        bus.emit(_event())

        assert calls == ["first", "second"]

    def test_events_delivered_in_emission_order(self, bus):
        seen = []
        bus.add_event_listener(lambda e: seen.append(e.entity_id))

        for entity_id in ("a", "b", "c"):
            bus.emit(_event(entity_id))

        assert seen == ["a", "b", "c"]

    def test_emit_without_listeners(self, bus):
        bus.emit(_event())

    def test_same_callable_twice_is_two_subscriptions(self, bus):
        seen = []
        unsubscribe_first = bus.add_event_listener(seen.append)
        bus.add_event_listener(seen.append)

        bus.emit(_event())
        unsubscribe_first()
        bus.emit(_event("p2"))

        assert [e.entity_id for e in seen] == ["p1", "p1", "p2"]


class TestIsolation:

    def test_failing_listener_does_not_affect_others(self, bus, captured_logs):
        received = []

        def broken(event):
            raise RuntimeError("listener exploded")

        bus.add_event_listener(lambda e: received.append(("a", e.entity_id)))
        bus.add_event_listener(broken)
        bus.add_event_listener(lambda e: received.append(("c", e.entity_id)))

        bus.emit(_event())

        assert received == [("a", "p1"), ("c", "p1")]
        failures = [r for r in captured_logs() if r["message"] == "coordination_listener_failed"]
        assert len(failures) == 1
        assert failures[0]["exc_type"] == "RuntimeError"
        assert failures[0]["level"] == "ERROR"

    def test_listener_logs_carry_the_event(self, bus, captured_logs):
        listener_logger = get_logger("tests.listener")
        bus.add_event_listener(lambda e: listener_logger.info("view_refreshed"))
        event = _event("p9", CoordinationEventType.UNIT_UPDATED)

        bus.emit(event)

        line = next(r for r in captured_logs() if r["message"] == "view_refreshed")
        assert line["event_type"] == "unit_updated"
        assert line["event_id"] == str(event.event_id)
        assert line["source"] == "inventory"
        assert line["entity_id"] == "p9"

    def test_event_fields_unbound_after_delivery(self, bus):
        seen = []
        bus.add_event_listener(lambda e: seen.append(LogContext.get_all()))

        bus.emit(_event())

        assert seen[0]["event_type"] == "product_updated"
        assert LogContext.get_all() == {}

    def test_failing_listener_still_receives_later_events(self, bus):
        attempts = []

        def flaky(event):
            attempts.append(event.entity_id)
            raise ValueError("nope")

        bus.add_event_listener(flaky)
        bus.emit(_event("a"))
        bus.emit(_event("b"))

        assert attempts == ["a", "b"]


class TestSubscription:

    def test_unsubscribe_stops_delivery(self, bus):
        seen = []
        unsubscribe = bus.add_event_listener(seen.append)

        unsubscribe()
        bus.emit(_event())

        assert seen == []
        assert bus.listener_count == 0

    def test_unsubscribe_is_idempotent(self, bus):
        keep = []
        bus.add_event_listener(keep.append)
        unsubscribe = bus.add_event_listener(lambda e: None)

        unsubscribe()
        unsubscribe()

        assert bus.listener_count == 1
        bus.emit(_event())
        assert len(keep) == 1

    def test_listener_may_unsubscribe_during_emit(self, bus):
        seen = []
        holder = {}

        def once(event):
            seen.append(event.entity_id)
            holder["unsubscribe"]()

        holder["unsubscribe"] = bus.add_event_listener(once)
        bus.emit(_event("a"))
        bus.emit(_event("b"))

        assert seen == ["a"]


class TestNotify:

    def test_notify_builds_and_returns_event(self, bus, clock, recorded_events):
        event = bus.notify(
            CoordinationEventType.UNIT_CREATED,
            "supplier",
            "u1",
            productId="p1",
        )

        assert recorded_events == [event]
        assert event.source is EventSource.SUPPLIER
        assert event.product_id == "p1"
        assert event.occurred_at == clock.now()

    def test_independent_buses(self):
        first, second = CoordinationBus(), CoordinationBus()
        seen = []
        first.add_event_listener(seen.append)

        second.emit(_event())

        assert seen == []
