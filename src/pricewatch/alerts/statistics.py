"""Delivery statistics and per-alert delivery reports."""

from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .models import (
    Alert,
    AlertDeliveryResult,
    AlertStatistics,
    DeliveryCounts,
    DeliveryOutcome,
    DeliveryReport,
    StatisticsPeriod,
)


def period_bounds(
    period: Union[StatisticsPeriod, str], now: datetime
) -> Tuple[datetime, datetime]:
    """
    Default reporting window ending at ``now``.

    daily: since the start of the UTC day; weekly: the last seven days;
    monthly: since the first of the UTC month.
    """
    period = StatisticsPeriod(period)
    now = now.astimezone(UTC)

    if period == StatisticsPeriod.DAILY:
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif period == StatisticsPeriod.WEEKLY:
        start = now - timedelta(days=7)
    else:
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    return start, now


def _average_response_time(results: Iterable[AlertDeliveryResult]) -> float:
    times = [
        r.response_time_ms
        for r in results
        if r.outcome == DeliveryOutcome.SUCCESS and r.response_time_ms is not None
    ]
    return sum(times) / len(times) if times else 0.0


def create_statistics(
    user_id: str,
    period: Union[StatisticsPeriod, str],
    alerts: Iterable[Alert],
    delivery_results: Iterable[AlertDeliveryResult],
    start_date: datetime,
    end_date: datetime,
    now: Optional[datetime] = None,
) -> AlertStatistics:
    """
    Roll alert and delivery history up into statistics for one user.

    ``total_sent`` counts alerts, one per alert regardless of channels.
    Delivered and failed totals count delivery rows belonging to the user's
    alerts. The caller chooses which alerts fall inside the period.

    Args:
        user_id: User to report on
        period: Reporting period label
        alerts: Alert history (may include other users)
        delivery_results: Delivery log rows
        start_date: Period start
        end_date: Period end
        now: Generation time, defaults to the current UTC time

    Returns:
        AlertStatistics for the user
    """
    user_alerts = {alert.id: alert for alert in alerts if alert.user_id == user_id}
    user_results = [r for r in delivery_results if r.alert_id in user_alerts]

    by_type: Dict[str, Dict[str, int]] = defaultdict(
        lambda: {"sent": 0, "delivered": 0, "failed": 0}
    )
    by_channel: Dict[str, Dict[str, int]] = defaultdict(
        lambda: {"sent": 0, "delivered": 0, "failed": 0}
    )

    for alert in user_alerts.values():
        by_type[alert.type.value]["sent"] += 1

    total_delivered = 0
    total_failed = 0
    for result in user_results:
        key = "delivered" if result.outcome == DeliveryOutcome.SUCCESS else "failed"
        if key == "delivered":
            total_delivered += 1
        else:
            total_failed += 1

        by_type[user_alerts[result.alert_id].type.value][key] += 1
        by_channel[result.channel.value]["sent"] += 1
        by_channel[result.channel.value][key] += 1

    total_sent = len(user_alerts)
    # Several channels can succeed for one alert, so the ratio is capped at 1
    delivery_rate = min(total_delivered / total_sent, 1.0) if total_sent else 0.0

    return AlertStatistics(
        user_id=user_id,
        period=StatisticsPeriod(period),
        total_sent=total_sent,
        total_delivered=total_delivered,
        total_failed=total_failed,
        by_type={k: DeliveryCounts(**v) for k, v in by_type.items()},
        by_channel={k: DeliveryCounts(**v) for k, v in by_channel.items()},
        average_delivery_time=_average_response_time(user_results),
        delivery_rate=delivery_rate,
        start_date=start_date,
        end_date=end_date,
        generated_at=now or datetime.now(UTC),
    )


def create_delivery_report(
    alert: Alert, results: Iterable[AlertDeliveryResult]
) -> DeliveryReport:
    """Summarise every channel send recorded for one alert."""
    deliveries: List[AlertDeliveryResult] = [
        r for r in results if r.alert_id == alert.id
    ]
    successful = sum(1 for r in deliveries if r.outcome == DeliveryOutcome.SUCCESS)

    return DeliveryReport(
        alert=alert,
        deliveries=deliveries,
        total_deliveries=len(deliveries),
        successful_deliveries=successful,
        failed_deliveries=len(deliveries) - successful,
        average_delivery_time=_average_response_time(deliveries),
    )
