"""Alert lifecycle events and the bus that carries them."""

from .event_bus import EventBus
from .events import (
    AlertCreatedEvent,
    AlertDeliveredEvent,
    AlertDispatchedEvent,
    AlertExpiredEvent,
    AlertFailedEvent,
    AlertRetryScheduledEvent,
    DomainEvent,
)

__all__ = [
    # Events
    "DomainEvent",
    "AlertCreatedEvent",
    "AlertDispatchedEvent",
    "AlertDeliveredEvent",
    "AlertRetryScheduledEvent",
    "AlertFailedEvent",
    "AlertExpiredEvent",
    # Event Bus
    "EventBus",
]
