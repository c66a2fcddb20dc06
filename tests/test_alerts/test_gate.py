"""Tests for the delivery gate and quiet-hours arithmetic."""

import sys
from datetime import UTC, datetime

import pytest

sys.path.append("src")
from pricewatch.alerts.models import AlertStatus, NotificationChannel
from pricewatch.alerts.preferences import (
    NotificationPreferences,
    QuietHours,
    TypePreference,
)
from pricewatch.alerts.gate import (
    can_send_alert,
    eligible_channels,
    is_in_quiet_hours,
    within_daily_limit,
)


def _at(hour, minute=0):
    return datetime(2024, 6, 3, hour, minute, tzinfo=UTC)


class TestQuietHours:
    """Test quiet-hours window arithmetic."""

    @pytest.mark.parametrize(
        "hour,minute,inside",
        [
            (23, 0, True),
            (22, 0, True),
            (3, 30, True),
            (7, 59, True),
            (8, 0, False),
            (9, 0, False),
            (21, 59, False),
        ],
    )
    def test_overnight_window(self, hour, minute, inside):
        """Test a 22:00-08:00 window wraps past midnight."""
        quiet = QuietHours(enabled=True, start="22:00", end="08:00", timezone="UTC")

        assert is_in_quiet_hours(quiet, _at(hour, minute)) is inside

    @pytest.mark.parametrize(
        "hour,inside", [(12, False), (13, True), (14, True), (15, False)]
    )
    def test_same_day_window(self, hour, inside):
        """Test a 13:00-15:00 window is half-open."""
        quiet = QuietHours(enabled=True, start="13:00", end="15:00")

        assert is_in_quiet_hours(quiet, _at(hour)) is inside

    def test_disabled_window(self):
        """Test a disabled window never suppresses."""
        quiet = QuietHours(enabled=False, start="00:00", end="23:59")

        assert not is_in_quiet_hours(quiet, _at(12))

    def test_equal_bounds_is_empty(self):
        """Test start == end is an empty window."""
        quiet = QuietHours(enabled=True, start="10:00", end="10:00")

        assert not is_in_quiet_hours(quiet, _at(10))

    def test_uses_configured_timezone(self):
        """Test local time is computed in the window's timezone."""
        # 12:00 UTC is 21:00 in Tokyo
        quiet = QuietHours(
            enabled=True, start="20:00", end="23:00", timezone="Asia/Tokyo"
        )

        assert is_in_quiet_hours(quiet, _at(12))
        in_utc = quiet.model_copy(update={"timezone": "UTC"})
        assert not is_in_quiet_hours(in_utc, _at(12))

    def test_fallback_timezone(self):
        """Test the fallback zone applies when the window has none."""
        quiet = QuietHours(enabled=True, start="20:00", end="23:00")

        assert is_in_quiet_hours(quiet, _at(12), fallback_timezone="Asia/Tokyo")


class TestCanSendAlert:
    """Test the ordered delivery gate rules."""

    @pytest.mark.parametrize(
        "status",
        [
            AlertStatus.SENT,
            AlertStatus.DELIVERED,
            AlertStatus.FAILED,
            AlertStatus.EXPIRED,
        ],
    )
    def test_non_pending_always_denied(self, make_alert, user_preferences, status):
        """Test any non-pending status denies regardless of other fields."""
        alert = make_alert()
        alert.status = status

        assert not can_send_alert(alert, user_preferences, 0, now=_at(12))

    def test_pending_allowed(self, make_alert, user_preferences):
        """Test a pending alert with capacity is allowed."""
        assert can_send_alert(make_alert(), user_preferences, 0, now=_at(12))

    @pytest.mark.parametrize(
        "count,allowed", [(5, True), (9, True), (10, False), (11, False)]
    )
    def test_hourly_limit(self, make_alert, user_preferences, count, allowed):
        """Test counts at or above the hourly limit deny."""
        assert user_preferences.max_notifications_per_hour == 10

        assert can_send_alert(make_alert(), user_preferences, count, now=_at(12)) is (
            allowed
        )

    def test_global_quiet_hours_deny(self, make_alert, user_preferences):
        """Test global quiet hours deny inside the window."""
        prefs = user_preferences.model_copy(
            update={
                "quiet_hours": QuietHours(
                    enabled=True, start="22:00", end="08:00", timezone="UTC"
                )
            }
        )

        assert not can_send_alert(make_alert(), prefs, 0, now=_at(23))
        assert can_send_alert(make_alert(), prefs, 0, now=_at(9))

    def test_quiet_hours_apply_to_urgent_alerts(self, make_alert, user_preferences):
        """Test urgent alerts are held during quiet hours too."""
        prefs = user_preferences.model_copy(
            update={"quiet_hours": QuietHours(enabled=True, start="22:00", end="08:00")}
        )
        alert = make_alert(type="historical_low", payload=None)

        assert alert.priority.value == "urgent"
        assert not can_send_alert(alert, prefs, 0, now=_at(23))

    def test_type_quiet_hours_deny(self, make_alert, user_preferences):
        """Test a type-level window denies only that type."""
        prefs = user_preferences.model_copy(
            update={
                "type_preferences": {
                    "price_drop": TypePreference(
                        quiet_hours=QuietHours(enabled=True, start="11:00", end="13:00")
                    )
                }
            }
        )

        assert not can_send_alert(make_alert(), prefs, 0, now=_at(12))
        assert can_send_alert(
            make_alert(type="back_in_stock", payload=None), prefs, 0, now=_at(12)
        )

    def test_type_quiet_hours_use_global_timezone(self, make_alert, user_preferences):
        """Test a type window without a zone falls back to the global zone."""
        prefs = user_preferences.model_copy(
            update={
                "quiet_hours": QuietHours(timezone="Asia/Tokyo"),
                "type_preferences": {
                    "price_drop": TypePreference(
                        quiet_hours=QuietHours(enabled=True, start="20:00", end="23:00")
                    )
                },
            }
        )

        assert not can_send_alert(make_alert(), prefs, 0, now=_at(12))

    def test_no_enabled_channel_denies(self, make_alert):
        """Test an alert with no channel the user enabled is denied."""
        prefs = NotificationPreferences(
            user_id="user_1", enabled_channels=[NotificationChannel.SMS]
        )

        assert not can_send_alert(make_alert(), prefs, 0, now=_at(12))


class TestChannelsAndDailyLimit:
    """Test channel intersection and the day-scoped limit."""

    def test_eligible_channels_intersection(self, make_alert):
        """Test only channels on both sides are used, in alert order."""
        prefs = NotificationPreferences(
            user_id="user_1",
            enabled_channels=[NotificationChannel.EMAIL, NotificationChannel.SMS],
        )
        alert = make_alert(channels=["push", "email"])

        assert eligible_channels(alert, prefs) == [NotificationChannel.EMAIL]

    @pytest.mark.parametrize("count,allowed", [(0, True), (49, True), (50, False)])
    def test_daily_limit(self, user_preferences, count, allowed):
        """Test counts at or above the daily limit deny."""
        assert within_daily_limit(count, user_preferences) is allowed
