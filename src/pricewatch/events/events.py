"""Alert lifecycle events."""

from abc import ABC
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4


@dataclass
class DomainEvent(ABC):
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_version: str = "1.0"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        result = {
            "event_type": self.__class__.__name__,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "event_version": self.event_version,
            "metadata": self.metadata,
        }

        for field_name, field_value in self.__dict__.items():
            if field_name not in ["event_id", "timestamp", "event_version", "metadata"]:
                if isinstance(field_value, datetime):
                    result[field_name] = field_value.isoformat()
                else:
                    result[field_name] = field_value

        return result


@dataclass
class AlertCreatedEvent(DomainEvent):
    """A new pending alert was created."""

    alert_id: str = ""
    user_id: str = ""
    product_id: str = ""
    alert_type: str = ""
    priority: str = ""
    channels: List[str] = field(default_factory=list)
    condition_id: Optional[str] = None


@dataclass
class AlertDispatchedEvent(DomainEvent):
    """A dispatch round finished on every channel."""

    alert_id: str = ""
    user_id: str = ""
    channels: List[str] = field(default_factory=list)
    delivery_results: List[Dict[str, Any]] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0


@dataclass
class AlertDeliveredEvent(DomainEvent):
    """Every channel accepted the alert."""

    alert_id: str = ""
    user_id: str = ""
    delivered_at: Optional[datetime] = None
    delivery_attempts: int = 0


@dataclass
class AlertRetryScheduledEvent(DomainEvent):
    """A failed alert was re-armed for another attempt."""

    alert_id: str = ""
    user_id: str = ""
    retry_at: Optional[datetime] = None
    delivery_attempts: int = 0
    max_delivery_attempts: int = 0


@dataclass
class AlertFailedEvent(DomainEvent):
    """Delivery attempts are exhausted; the alert is terminally failed."""

    alert_id: str = ""
    user_id: str = ""
    delivery_attempts: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class AlertExpiredEvent(DomainEvent):
    """The alert's relevance window lapsed before a successful send."""

    alert_id: str = ""
    user_id: str = ""
    reason: str = ""
