"""
Coordination events -- immutable messages describing cross-module changes.

Responsibility:
    Defines the closed set of event types and emitting feature areas, and the
    CoordinationEvent value object carried by the CoordinationBus.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Events are frozen; ``metadata`` is a read-only mapping so a listener
      cannot alter what later listeners observe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID, uuid4


class CoordinationEventType(str, Enum):
    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"
    UNIT_CREATED = "unit_created"
    UNIT_UPDATED = "unit_updated"
    STOCK_UPDATED = "stock_updated"
    BARCODE_REGISTERED = "barcode_registered"
    SYNC_REQUESTED = "sync_requested"


class EventSource(str, Enum):
    """Feature area that emitted an event."""

    SUPPLIER = "supplier"
    INVENTORY = "inventory"
    SALES = "sales"


PRODUCT_EVENTS = frozenset(
    {CoordinationEventType.PRODUCT_CREATED, CoordinationEventType.PRODUCT_UPDATED}
)

@dataclass(frozen=True)
class CoordinationEvent:
    """A single cross-module state change, delivered in-process then discarded."""

    type: CoordinationEventType
    source: EventSource
    entity_id: str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", CoordinationEventType(self.type))
        object.__setattr__(self, "source", EventSource(self.source))
        object.__setattr__(self, "entity_id", str(self.entity_id))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def product_id(self) -> str | None:
        """Related product id; the entity itself for product events."""
        if self.type in PRODUCT_EVENTS:
            return self.entity_id
        value = self.metadata.get("productId")
        return str(value) if value is not None else None
