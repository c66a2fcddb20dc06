"""Channel sender interface consumed by the dispatcher."""

from dataclasses import dataclass
from typing import Optional, Protocol

from .models import Alert, NotificationChannel


@dataclass
class ChannelSendResult:
    """What a transport reports back for one send."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    response_time_ms: Optional[float] = None


class ChannelSender(Protocol):
    """Protocol for push, email and SMS transports."""

    async def send(
        self, alert: Alert, channel: NotificationChannel
    ) -> ChannelSendResult:
        """Send the alert on one channel.

        Implementations may return a failed result or raise
        ``ChannelDeliveryError``; both are recorded as a failed delivery.
        """
        ...
