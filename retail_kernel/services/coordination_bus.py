"""
CoordinationBus -- in-process publish/subscribe for cross-module changes.

Responsibility:
    Lets feature areas that mutate product/unit state (supplier receiving,
    inventory, sales) tell feature areas that cache derived views to
    invalidate them, without either side importing the other.

Architecture position:
    Kernel > Services.  Constructed once per process by
    retail_services.context.RetailContext and passed by reference to every
    service that emits or consumes events.  There is no module-level instance.

Invariants enforced:
    - Delivery is synchronous, in emission order, and in registration order.
    - A listener that raises is logged and skipped; the emitter and the
      remaining listeners are never affected.
    - Unsubscribing is idempotent.

Non-goals:
    - No persistence, replay, or cross-process delivery.  Other sessions see
      only what reaches the shared database; a ``sync_requested`` event
      followed by a full refetch is the correctness backstop.
"""

from __future__ import annotations

import itertools
import threading
from typing import Any, Callable

from retail_kernel.domain.clock import Clock, SystemClock
from retail_kernel.domain.events import (
    CoordinationEvent,
    CoordinationEventType,
    EventSource,
)
from retail_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.coordination_bus")

EventListener = Callable[[CoordinationEvent], Any]
Unsubscribe = Callable[[], None]


class CoordinationBus:
    """Synchronous event fan-out with per-listener failure isolation."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._listeners: list[tuple[int, EventListener]] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def add_event_listener(self, callback: EventListener) -> Unsubscribe:
        """
        Register ``callback`` for every subsequent event.

        Returns:
            A function that deregisters this subscription.  Calling it more
            than once is a no-op.
        """
        with self._lock:
            subscription_id = next(self._ids)
            self._listeners.append((subscription_id, callback))
        logger.debug(
            "coordination_listener_added",
            extra={"subscription_id": subscription_id},
        )

        def unsubscribe() -> None:
            with self._lock:
                before = len(self._listeners)
                self._listeners = [
                    entry for entry in self._listeners if entry[0] != subscription_id
                ]
                removed = len(self._listeners) != before
            if removed:
                logger.debug(
                    "coordination_listener_removed",
                    extra={"subscription_id": subscription_id},
                )

        return unsubscribe

    def emit(self, event: CoordinationEvent) -> None:
        """Deliver ``event`` to a snapshot of the current listeners."""
        with self._lock:
            listeners = list(self._listeners)

        # Listener log lines carry the event they are handling.
        with LogContext.bind(
            event_type=event.type,
            event_id=event.event_id,
            source=event.source,
            entity_id=event.entity_id,
        ):
            logger.info("coordination_event_emitted", extra={"listeners": len(listeners)})

            for subscription_id, listener in listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception(
                        "coordination_listener_failed",
                        extra={"subscription_id": subscription_id},
                    )

    def notify(
        self,
        event_type: CoordinationEventType | str,
        source: EventSource | str,
        entity_id: Any,
        **metadata: Any,
    ) -> CoordinationEvent:
        """Build an event stamped with the bus clock, emit it, and return it."""
        event = CoordinationEvent(
            type=event_type,
            source=source,
            entity_id=str(entity_id),
            metadata=metadata,
            occurred_at=self._clock.now(),
        )
        self.emit(event)
        return event
