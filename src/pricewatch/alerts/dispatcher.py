"""Multi-channel fan-out for approved alerts."""

import asyncio
import time
from typing import List, Mapping, Optional

from ..clock import Clock
from ..config.logging import get_logger
from ..events import (
    AlertDeliveredEvent,
    AlertDispatchedEvent,
    AlertFailedEvent,
    AlertRetryScheduledEvent,
    EventBus,
)
from ..exceptions import ChannelDeliveryError
from .channels import ChannelSender, ChannelSendResult
from .gate import eligible_channels
from .models import (
    Alert,
    AlertDeliveryResult,
    AlertStatus,
    DeliveryOutcome,
    NotificationChannel,
)
from .preferences import NotificationPreferences
from .retry import RetryPolicy, calculate_next_retry_time, should_retry
from .stores import AlertStore, DeliveryLogStore

logger = get_logger(__name__)

DEFAULT_SEND_TIMEOUT_SECONDS = 10.0


class AlertDispatcher:
    """Sends an approved alert on every enabled channel and settles its status.

    One task runs per channel. Each task only appends to the delivery log;
    the alert itself is updated once, after every channel has finished.
    """

    def __init__(
        self,
        senders: Mapping[NotificationChannel, ChannelSender],
        delivery_log: DeliveryLogStore,
        alert_store: AlertStore,
        clock: Clock,
        event_bus: Optional[EventBus] = None,
        send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        retry_policy: RetryPolicy = RetryPolicy(),
    ):
        self.senders = dict(senders)
        self.delivery_log = delivery_log
        self.alert_store = alert_store
        self.clock = clock
        self.event_bus = event_bus or EventBus("alerts")
        self.send_timeout = send_timeout
        self.retry_policy = retry_policy
        self.logger = logger.bind(component="dispatcher")

    async def dispatch(
        self, alert: Alert, preferences: NotificationPreferences
    ) -> List[AlertDeliveryResult]:
        """
        Run one dispatch round for an approved alert.

        Args:
            alert: Pending alert that passed the delivery gate
            preferences: Recipient's preferences (for channel selection)

        Returns:
            One delivery result per channel attempted

        Raises:
            ValueError: If no alert channel is enabled for the user
        """
        channels = eligible_channels(alert, preferences)
        if not channels:
            raise ValueError(f"Alert {alert.id} has no enabled channel to dispatch on")

        log = self.logger.bind(alert_id=alert.id, user_id=alert.user_id)
        log.info(
            "Dispatching alert",
            alert_type=alert.type.value,
            priority=alert.priority.value,
            channels=[ch.value for ch in channels],
            attempt=alert.delivery_attempts + 1,
        )

        # A failing channel never cancels its siblings: _send_on_channel
        # converts every failure into a result row instead of raising.
        results = list(
            await asyncio.gather(
                *(self._send_on_channel(alert, channel) for channel in channels)
            )
        )

        self._settle(alert, results)
        self.alert_store.save(alert)

        successful = sum(1 for r in results if r.succeeded)
        log.info(
            "Alert dispatch completed",
            status=alert.status.value,
            successful_deliveries=successful,
            total_attempts=len(results),
            delivery_attempts=alert.delivery_attempts,
        )

        await self._publish_round(alert, results)
        return results

    async def _send_on_channel(
        self, alert: Alert, channel: NotificationChannel
    ) -> AlertDeliveryResult:
        """Send on one channel with a timeout and log the outcome."""
        log = self.logger.bind(alert_id=alert.id, channel=channel.value)
        sender = self.senders.get(channel)
        started = time.perf_counter()

        send_result: Optional[ChannelSendResult] = None
        failure: Optional[ChannelDeliveryError] = None

        if sender is None:
            failure = ChannelDeliveryError(channel.value, "no sender configured")
        else:
            try:
                send_result = await asyncio.wait_for(
                    sender.send(alert, channel), timeout=self.send_timeout
                )
            except asyncio.TimeoutError:
                failure = ChannelDeliveryError(
                    channel.value, f"timed out after {self.send_timeout:g}s"
                )
            except ChannelDeliveryError as e:
                failure = e
            except Exception as e:
                log.error("Channel sender raised", error=str(e), exc_info=True)
                failure = ChannelDeliveryError(channel.value, str(e) or type(e).__name__)

        elapsed_ms = (time.perf_counter() - started) * 1000

        if failure is not None:
            log.warning("Channel delivery failed", error=failure.reason)
            result = AlertDeliveryResult(
                alert_id=alert.id,
                channel=channel,
                outcome=DeliveryOutcome.FAILED,
                response_time_ms=elapsed_ms,
                error=failure.reason,
            )
        else:
            response_time = (
                send_result.response_time_ms
                if send_result.response_time_ms is not None
                else elapsed_ms
            )
            if send_result.success:
                result = AlertDeliveryResult(
                    alert_id=alert.id,
                    channel=channel,
                    outcome=DeliveryOutcome.SUCCESS,
                    message_id=send_result.message_id,
                    delivered_at=self.clock.now(),
                    response_time_ms=response_time,
                )
            else:
                log.warning("Channel rejected alert", error=send_result.error)
                result = AlertDeliveryResult(
                    alert_id=alert.id,
                    channel=channel,
                    outcome=DeliveryOutcome.FAILED,
                    message_id=send_result.message_id,
                    response_time_ms=response_time,
                    error=send_result.error or "delivery failed",
                )

        # The round still settles when the log write fails
        try:
            self.delivery_log.append(result)
        except Exception as e:
            log.error("Failed to record delivery result", error=str(e), exc_info=True)

        return result

    def _settle(self, alert: Alert, results: List[AlertDeliveryResult]) -> None:
        """Apply the outcome of a finished round to the alert."""
        if all(r.succeeded for r in results):
            alert.status = AlertStatus.DELIVERED
            alert.delivered_at = self.clock.now()
            alert.scheduled_at = None
            return

        alert.delivery_attempts = min(
            alert.delivery_attempts + 1, alert.max_delivery_attempts
        )
        alert.status = AlertStatus.FAILED

        if should_retry(alert):
            alert.scheduled_at = calculate_next_retry_time(alert, self.retry_policy)
            alert.status = AlertStatus.PENDING

    async def _publish_round(
        self, alert: Alert, results: List[AlertDeliveryResult]
    ) -> None:
        successful = sum(1 for r in results if r.succeeded)

        await self.event_bus.publish(
            AlertDispatchedEvent(
                alert_id=alert.id,
                user_id=alert.user_id,
                channels=[r.channel.value for r in results],
                delivery_results=[r.model_dump(mode="json") for r in results],
                success_count=successful,
                failure_count=len(results) - successful,
            )
        )

        if alert.status == AlertStatus.DELIVERED:
            event = AlertDeliveredEvent(
                alert_id=alert.id,
                user_id=alert.user_id,
                delivered_at=alert.delivered_at,
                delivery_attempts=alert.delivery_attempts,
            )
        elif alert.status == AlertStatus.PENDING:
            event = AlertRetryScheduledEvent(
                alert_id=alert.id,
                user_id=alert.user_id,
                retry_at=alert.scheduled_at,
                delivery_attempts=alert.delivery_attempts,
                max_delivery_attempts=alert.max_delivery_attempts,
            )
        else:
            event = AlertFailedEvent(
                alert_id=alert.id,
                user_id=alert.user_id,
                delivery_attempts=alert.delivery_attempts,
                errors=[r.error for r in results if r.error],
            )

        await self.event_bus.publish(event)
