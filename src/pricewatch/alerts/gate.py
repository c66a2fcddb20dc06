"""Delivery gate: may this alert be dispatched right now?"""

from datetime import UTC, datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from ..config.logging import get_logger
from .models import Alert, AlertStatus, NotificationChannel
from .preferences import NotificationPreferences, QuietHours

logger = get_logger(__name__)


def _minutes_of_day(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def is_in_quiet_hours(
    quiet_hours: QuietHours,
    now: datetime,
    fallback_timezone: str = "UTC",
) -> bool:
    """
    Check whether ``now`` falls inside a quiet-hours window.

    The window is ``[start, end)`` in the configured timezone and wraps past
    midnight when ``start > end``. A window with ``start == end`` is empty.

    Args:
        quiet_hours: Window configuration
        now: Current time (timezone-aware)
        fallback_timezone: Zone used when the window has none

    Returns:
        True if inside an enabled window
    """
    if not quiet_hours.enabled or not quiet_hours.start or not quiet_hours.end:
        return False

    local = now.astimezone(ZoneInfo(quiet_hours.timezone or fallback_timezone))
    current = local.hour * 60 + local.minute
    start = _minutes_of_day(quiet_hours.start)
    end = _minutes_of_day(quiet_hours.end)

    if start <= end:
        return start <= current < end
    # Overnight window, e.g. 22:00 - 08:00
    return current >= start or current < end


def eligible_channels(
    alert: Alert, preferences: NotificationPreferences
) -> List[NotificationChannel]:
    """Alert channels the user has enabled, in alert order."""
    enabled = set(preferences.enabled_channels)
    return [channel for channel in alert.channels if channel in enabled]


def can_send_alert(
    alert: Alert,
    preferences: NotificationPreferences,
    current_hour_sent_count: int = 0,
    now: Optional[datetime] = None,
) -> bool:
    """
    Decide whether an alert may be dispatched now.

    Rules are checked in order and the first failure denies:
    pending status, quiet hours (global, then type-level), hourly limit,
    and at least one enabled channel.

    Args:
        alert: Alert to check
        preferences: Recipient's notification preferences
        current_hour_sent_count: Alerts already sent to the user this hour
        now: Current time, defaults to the current UTC time

    Returns:
        True if the alert may be sent
    """
    log = logger.bind(alert_id=alert.id, user_id=alert.user_id)
    now = now or datetime.now(UTC)

    if alert.status != AlertStatus.PENDING:
        log.debug("Alert not pending", status=alert.status.value)
        return False

    global_zone = preferences.quiet_hours.timezone or "UTC"
    if is_in_quiet_hours(preferences.quiet_hours, now):
        log.debug("Inside global quiet hours")
        return False

    type_preference = preferences.for_type(alert.type)
    if type_preference is not None and is_in_quiet_hours(
        type_preference.quiet_hours, now, fallback_timezone=global_zone
    ):
        log.debug("Inside type quiet hours", alert_type=alert.type.value)
        return False

    if current_hour_sent_count >= preferences.max_notifications_per_hour:
        log.debug(
            "Hourly limit reached",
            sent=current_hour_sent_count,
            limit=preferences.max_notifications_per_hour,
        )
        return False

    if not eligible_channels(alert, preferences):
        log.debug("No enabled channel for alert")
        return False

    return True


def within_daily_limit(
    current_day_sent_count: int, preferences: NotificationPreferences
) -> bool:
    """Day-scoped counterpart of the hourly limit check."""
    return current_day_sent_count < preferences.max_notifications_per_day
