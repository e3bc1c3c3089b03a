"""
InventoryViewCache -- a coordination bus consumer that caches catalog views.

Keeps product / unit views loaded through a caller-supplied loader and drops
them when the bus reports a change to the entity, or to the product a unit
belongs to.  ``sync_requested`` clears everything.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterable

from retail_kernel.domain.events import (
    CoordinationEvent,
    CoordinationEventType,
    EventSource,
)
from retail_kernel.logging_config import get_logger
from retail_kernel.services.coordination_bus import CoordinationBus

logger = get_logger("services.inventory_cache")


class InventoryViewCache:
    """
    Read-through cache invalidated by coordination events.

    Subscription lifecycle: unsubscribed -> subscribed -> unsubscribed.
    Both transitions are idempotent.

    Catalog events arrive after the emitter flushes and before it commits.
    A ``get`` served between the event and that commit loads through a
    session that cannot see the change yet, and the stale view stays cached
    until the next event for the key or ``sync_requested``.  Loaders that
    read through the emitter's own session do not have this window.
    """

    def __init__(
        self,
        bus: CoordinationBus,
        loader: Callable[[str], Any],
        sources: Iterable[EventSource | str] | None = None,
        event_types: Iterable[CoordinationEventType | str] | None = None,
    ):
        self._bus = bus
        self._loader = loader
        self._sources = (
            frozenset(EventSource(s) for s in sources) if sources is not None else None
        )
        self._event_types = (
            frozenset(CoordinationEventType(t) for t in event_types)
            if event_types is not None
            else None
        )
        self._entries: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = None
        self.hits = 0
        self.misses = 0
        self.invalidations = 0

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    def subscribe(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.add_event_listener(self.handle_event)

    def unsubscribe(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return str(key) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Any) -> Any:
        key = str(key)
        with self._lock:
            if key in self._entries:
                self.hits += 1
                return self._entries[key]
            self.misses += 1

        # Loader runs unlocked; a concurrent invalidation may be overwritten
        # by this result until the next event.
        value = self._loader(key)
        with self._lock:
            self._entries[key] = value
        return value

    def invalidate(self, key: Any) -> bool:
        with self._lock:
            removed = self._entries.pop(str(key), None) is not None
            if removed:
                self.invalidations += 1
        return removed

    def clear(self) -> None:
        with self._lock:
            self.invalidations += len(self._entries)
            self._entries.clear()

    def _accepts(self, event: CoordinationEvent) -> bool:
        if event.type is CoordinationEventType.SYNC_REQUESTED:
            return True
        if self._sources is not None and event.source not in self._sources:
            return False
        if self._event_types is not None and event.type not in self._event_types:
            return False
        return True

    def handle_event(self, event: CoordinationEvent) -> None:
        if not self._accepts(event):
            return

        if event.type is CoordinationEventType.SYNC_REQUESTED:
            self.clear()
            logger.info("inventory_cache_cleared", extra={"event_id": event.event_id})
            return

        dropped = [
            key
            for key in {event.entity_id, event.product_id}
            if key is not None and self.invalidate(key)
        ]
        if dropped:
            logger.debug(
                "inventory_cache_invalidated",
                extra={"event_type": event.type.value, "keys": sorted(dropped)},
            )
