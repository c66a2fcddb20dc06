"""Alert engine: creation, gated delivery, retries and reporting."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Union

from ..clock import Clock, SystemClock
from ..config.logging import get_logger
from ..config.settings import Settings, get_settings
from ..events import AlertCreatedEvent, AlertExpiredEvent, EventBus
from ..exceptions import AlertNotFoundError, PriceWatchError
from .channels import ChannelSender
from .conditions import AlertCondition
from .dispatcher import AlertDispatcher
from .gate import can_send_alert, within_daily_limit
from .models import (
    Alert,
    AlertDeliveryResult,
    AlertInput,
    AlertStatistics,
    AlertStatus,
    DeliveryReport,
    NotificationChannel,
    StatisticsPeriod,
)
from .preferences import NotificationPreferences
from .prioritizer import create_alert, parse_alert_input
from .rate_limit import SentCounter, SentCounts
from .retry import RetryPolicy, RetryScheduler, is_retry_eligible
from .statistics import create_delivery_report, create_statistics, period_bounds
from .stores import AlertStore, ConditionStore, DeliveryLogStore, PreferencesStore

logger = get_logger(__name__)


class DeliveryDecision(str, Enum):
    """What a delivery attempt did with an alert."""

    SKIPPED = "skipped"
    EXPIRED = "expired"
    NOT_DUE = "not_due"
    DENIED = "denied"
    DISPATCHED = "dispatched"


@dataclass
class DeliveryRound:
    """Outcome of one call to ``AlertEngine.deliver``."""

    alert: Alert
    decision: DeliveryDecision
    results: List[AlertDeliveryResult] = field(default_factory=list)

    @property
    def dispatched(self) -> bool:
        return self.decision == DeliveryDecision.DISPATCHED


class AlertEngine:
    """
    Turns fired conditions into alerts and drives them through delivery.

    Collaborators are injected: stores, channel senders, clock, event bus and
    retry scheduler. At most one dispatch round runs per alert id at a time,
    and per-user sent counters are checked and incremented atomically.
    """

    def __init__(
        self,
        alert_store: AlertStore,
        delivery_log: DeliveryLogStore,
        preferences_store: PreferencesStore,
        senders: Mapping[NotificationChannel, ChannelSender],
        condition_store: Optional[ConditionStore] = None,
        clock: Optional[Clock] = None,
        event_bus: Optional[EventBus] = None,
        retry_scheduler: Optional[RetryScheduler] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.alert_store = alert_store
        self.delivery_log = delivery_log
        self.preferences_store = preferences_store
        self.condition_store = condition_store
        self.clock = clock or SystemClock()
        self.event_bus = event_bus or EventBus("alerts")
        self.retry_scheduler = retry_scheduler
        self.retry_policy = RetryPolicy.from_settings(self.settings)

        self.dispatcher = AlertDispatcher(
            senders=senders,
            delivery_log=delivery_log,
            alert_store=alert_store,
            clock=self.clock,
            event_bus=self.event_bus,
            send_timeout=self.settings.channel_send_timeout_seconds,
            retry_policy=self.retry_policy,
        )
        self.sent_counter = SentCounter(self.clock)

        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_waiters: Dict[str, int] = {}

        self.logger = logger.bind(component="alert_engine")

    # Lifecycle

    def start(self) -> None:
        """Start the retry scheduler, if one is configured."""
        if self.retry_scheduler is not None:
            self.retry_scheduler.start()

    def shutdown(self) -> None:
        if self.retry_scheduler is not None:
            self.retry_scheduler.shutdown()

    # Creation

    def preferences_for(self, user_id: str) -> NotificationPreferences:
        """Stored preferences for a user, or defaults from settings."""
        preferences = self.preferences_store.get(user_id)
        if preferences is not None:
            return preferences

        return NotificationPreferences(
            user_id=user_id,
            max_notifications_per_day=self.settings.default_max_notifications_per_day,
            max_notifications_per_hour=self.settings.default_max_notifications_per_hour,
        )

    async def raise_alert(
        self,
        data: Union[AlertInput, Mapping[str, Any]],
        preferences: Optional[NotificationPreferences] = None,
    ) -> Optional[Alert]:
        """
        Create and persist a pending alert.

        Args:
            data: Alert input (model or mapping)
            preferences: Recipient's preferences, looked up when omitted

        Returns:
            The new alert, or None if the user disabled this alert type

        Raises:
            ValidationError: If the input is malformed
        """
        alert_input = parse_alert_input(data)
        log = self.logger.bind(
            user_id=alert_input.user_id, product_id=alert_input.product_id
        )

        preferences = preferences or self.preferences_for(alert_input.user_id)
        type_preference = preferences.for_type(alert_input.type)

        if type_preference is not None and not type_preference.enabled:
            log.info("Alert type disabled by user", alert_type=alert_input.type.value)
            return None

        if (
            alert_input.priority is None
            and type_preference is not None
            and type_preference.priority is not None
        ):
            alert_input = alert_input.model_copy(
                update={"priority": type_preference.priority}
            )

        alert = create_alert(
            alert_input,
            now=self.clock.now(),
            max_delivery_attempts=self.settings.default_max_delivery_attempts,
        )
        self.alert_store.save(alert)

        log.info(
            "Alert raised",
            alert_id=alert.id,
            alert_type=alert.type.value,
            priority=alert.priority.value,
        )

        await self.event_bus.publish(
            AlertCreatedEvent(
                alert_id=alert.id,
                user_id=alert.user_id,
                product_id=alert.product_id,
                alert_type=alert.type.value,
                priority=alert.priority.value,
                channels=[ch.value for ch in alert.channels],
                condition_id=alert.condition_id,
            )
        )
        return alert

    async def on_condition_fired(
        self, condition_id: str, data: Union[AlertInput, Mapping[str, Any]]
    ) -> Optional[Alert]:
        """
        Record a condition trigger and raise the alert it produces.

        ``data`` supplies the alert type, payload and any overrides; user,
        product and condition id are taken from the condition itself.

        Returns:
            The new alert, or None if the condition is not live or the user
            disabled the alert type

        Raises:
            AlertNotFoundError: If the condition does not exist
            ValidationError: If the alert input is malformed; the trigger is
                not recorded
        """
        if self.condition_store is None:
            raise PriceWatchError("No condition store configured")

        condition = self.condition_store.get(condition_id)
        if condition is None:
            raise AlertNotFoundError("Condition", condition_id)

        now = self.clock.now()
        if not condition.is_live(now):
            self.logger.info(
                "Ignoring trigger for inactive condition", condition_id=condition_id
            )
            return None

        fields = (
            data.model_dump(exclude_none=True)
            if isinstance(data, AlertInput)
            else dict(data)
        )
        fields.update(
            user_id=condition.user_id,
            product_id=condition.product_id,
            condition_id=condition.id,
        )
        alert_input = parse_alert_input(fields)

        self.condition_store.record_trigger(condition_id, now)
        return await self.raise_alert(alert_input)

    # Delivery

    @asynccontextmanager
    async def _alert_lock(self, alert_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(alert_id, asyncio.Lock())
        self._lock_waiters[alert_id] = self._lock_waiters.get(alert_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_waiters[alert_id] -= 1
            if not self._lock_waiters[alert_id]:
                del self._lock_waiters[alert_id]
                del self._locks[alert_id]

    async def deliver(self, alert_id: str) -> DeliveryRound:
        """
        Run the delivery gate and, if approved, one dispatch round.

        Args:
            alert_id: Alert to deliver

        Returns:
            DeliveryRound describing what happened

        Raises:
            AlertNotFoundError: If the alert does not exist
        """
        async with self._alert_lock(alert_id):
            alert = self.alert_store.get(alert_id)
            if alert is None:
                raise AlertNotFoundError("Alert", alert_id)
            return await self._deliver_locked(alert)

    async def fire_retry(self, alert_id: str) -> Optional[DeliveryRound]:
        """
        Scheduled retry entry point.

        Liveness is re-checked right before dispatch; an alert that is no
        longer eligible is not sent.
        """
        async with self._alert_lock(alert_id):
            alert = self.alert_store.get(alert_id)
            if alert is None:
                self.logger.warning("Retry fired for unknown alert", alert_id=alert_id)
                return None

            if alert.status != AlertStatus.PENDING:
                return DeliveryRound(alert=alert, decision=DeliveryDecision.SKIPPED)

            now = self.clock.now()
            if not is_retry_eligible(alert, self._condition_for(alert), now):
                reason = self._expiry_reason(alert, now) or "not_eligible"
                self.logger.info(
                    "Retry aborted", alert_id=alert_id, reason=reason
                )
                await self._expire(alert, reason)
                return DeliveryRound(alert=alert, decision=DeliveryDecision.EXPIRED)

            return await self._deliver_locked(alert)

    async def _deliver_locked(self, alert: Alert) -> DeliveryRound:
        log = self.logger.bind(alert_id=alert.id, user_id=alert.user_id)
        now = self.clock.now()

        if alert.is_terminal:
            log.debug("Alert already settled", status=alert.status.value)
            return DeliveryRound(alert=alert, decision=DeliveryDecision.SKIPPED)

        reason = self._expiry_reason(alert, now)
        if reason is not None:
            await self._expire(alert, reason)
            return DeliveryRound(alert=alert, decision=DeliveryDecision.EXPIRED)

        if not alert.is_due(now):
            log.debug("Alert not yet due", scheduled_at=alert.scheduled_at.isoformat())
            return DeliveryRound(alert=alert, decision=DeliveryDecision.NOT_DUE)

        preferences = self.preferences_for(alert.user_id)
        cooling_down = self._in_cooldown(alert, now)

        def approve(counts: SentCounts) -> bool:
            return not cooling_down and can_send_alert(
                alert, preferences, current_hour_sent_count=counts.hour, now=now
            ) and within_daily_limit(counts.day, preferences)

        if not await self.sent_counter.try_reserve(alert.user_id, approve):
            log.info("Alert delivery denied", cooldown=cooling_down)
            return DeliveryRound(alert=alert, decision=DeliveryDecision.DENIED)

        results = await self.dispatcher.dispatch(alert, preferences)

        if alert.status == AlertStatus.PENDING and alert.scheduled_at is not None:
            self._schedule_retry(alert)
        elif self.retry_scheduler is not None:
            self.retry_scheduler.cancel(alert.id)

        return DeliveryRound(
            alert=alert, decision=DeliveryDecision.DISPATCHED, results=results
        )

    def _in_cooldown(self, alert: Alert, now: datetime) -> bool:
        """Whether another alert for the same product reached the user recently."""
        if not self.settings.cooldown_minutes:
            return False

        since = now - timedelta(minutes=self.settings.cooldown_minutes)
        recent = self.alert_store.recent_for_product(
            alert.user_id, alert.product_id, since
        )
        return any(other.id != alert.id for other in recent)

    def _condition_for(self, alert: Alert) -> Optional[AlertCondition]:
        if alert.condition_id is None or self.condition_store is None:
            return None
        return self.condition_store.get(alert.condition_id)

    def _expiry_reason(self, alert: Alert, now: datetime) -> Optional[str]:
        """Why an alert is no longer relevant, or None while it still is."""
        if alert.is_expired(now):
            return "expired"

        if alert.condition_id is not None and self.condition_store is not None:
            condition = self.condition_store.get(alert.condition_id)
            if condition is None or not condition.is_live(now):
                return "condition_inactive"

        return None

    async def _expire(self, alert: Alert, reason: str) -> None:
        alert.status = AlertStatus.EXPIRED
        self.alert_store.save(alert)

        if self.retry_scheduler is not None:
            self.retry_scheduler.cancel(alert.id)

        self.logger.info("Alert expired", alert_id=alert.id, reason=reason)
        await self.event_bus.publish(
            AlertExpiredEvent(alert_id=alert.id, user_id=alert.user_id, reason=reason)
        )

    def _schedule_retry(self, alert: Alert) -> None:
        if self.retry_scheduler is None:
            return
        self.retry_scheduler.schedule(alert.id, alert.scheduled_at, self.fire_retry)

    # Batch processing

    async def process_batch(self, alert_ids: Iterable[str]) -> List[DeliveryRound]:
        """
        Deliver many alerts, ``dispatch_batch_size`` at a time.

        A failure for one alert is logged and does not stop the rest.
        """
        alert_ids = list(alert_ids)
        batch_size = self.settings.dispatch_batch_size
        rounds: List[DeliveryRound] = []

        for offset in range(0, len(alert_ids), batch_size):
            batch = alert_ids[offset : offset + batch_size]
            outcomes = await asyncio.gather(
                *(self.deliver(alert_id) for alert_id in batch),
                return_exceptions=True,
            )

            for alert_id, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    self.logger.error(
                        "Alert processing failed",
                        alert_id=alert_id,
                        error=str(outcome),
                    )
                    continue
                rounds.append(outcome)

        self.logger.info(
            "Alert batch processed",
            requested=len(alert_ids),
            dispatched=sum(1 for r in rounds if r.dispatched),
        )
        return rounds

    async def process_due(self) -> List[DeliveryRound]:
        """Deliver every pending alert whose time has come."""
        due = self.alert_store.list_due(self.clock.now())
        return await self.process_batch(alert.id for alert in due)

    # Reporting

    def get_statistics(
        self,
        user_id: str,
        period: Union[StatisticsPeriod, str] = StatisticsPeriod.DAILY,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> AlertStatistics:
        """
        Delivery statistics for alerts a user received in a period.

        Args:
            user_id: User to report on
            period: daily, weekly or monthly
            start_date: Override for the period start
            end_date: Override for the period end

        Returns:
            AlertStatistics for the window
        """
        now = self.clock.now()
        default_start, default_end = period_bounds(period, now)
        start_date = start_date or default_start
        end_date = end_date or default_end

        alerts = self.alert_store.list_for_user(user_id, start_date, end_date)
        results = self.delivery_log.list_for_alerts(alert.id for alert in alerts)

        return create_statistics(
            user_id=user_id,
            period=period,
            alerts=alerts,
            delivery_results=results,
            start_date=start_date,
            end_date=end_date,
            now=now,
        )

    def get_delivery_report(self, alert_id: str) -> DeliveryReport:
        """Every channel send recorded for one alert."""
        alert = self.alert_store.get(alert_id)
        if alert is None:
            raise AlertNotFoundError("Alert", alert_id)
        return create_delivery_report(alert, self.delivery_log.list_for_alert(alert_id))
