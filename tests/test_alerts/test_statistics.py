"""Tests for delivery statistics and reports."""

import sys
from datetime import UTC, datetime, timedelta

import pytest

sys.path.append("src")
from pricewatch.alerts.models import (
    AlertDeliveryResult,
    DeliveryOutcome,
    NotificationChannel,
    StatisticsPeriod,
)
from pricewatch.alerts.statistics import (
    create_delivery_report,
    create_statistics,
    period_bounds,
)

NOW = datetime(2024, 6, 12, 15, 30, tzinfo=UTC)


def _result(alert_id, channel, outcome, response_time_ms=100.0):
    return AlertDeliveryResult(
        alert_id=alert_id,
        channel=channel,
        outcome=outcome,
        response_time_ms=response_time_ms,
    )


@pytest.fixture
def history(make_alert):
    """Three alerts across two users plus their delivery rows."""
    mine_1 = make_alert(user_id="user_1", type="price_drop", payload=None)
    mine_2 = make_alert(user_id="user_1", type="back_in_stock", payload=None)
    theirs = make_alert(user_id="user_2", type="price_drop", payload=None)

    results = [
        _result(mine_1.id, NotificationChannel.PUSH, DeliveryOutcome.SUCCESS, 100.0),
        _result(mine_1.id, NotificationChannel.EMAIL, DeliveryOutcome.FAILED, 900.0),
        _result(mine_2.id, NotificationChannel.PUSH, DeliveryOutcome.SUCCESS, 300.0),
        _result(theirs.id, NotificationChannel.PUSH, DeliveryOutcome.SUCCESS),
        _result(theirs.id, NotificationChannel.SMS, DeliveryOutcome.FAILED),
    ]
    return [mine_1, mine_2, theirs], results


class TestCreateStatistics:
    """Test statistics aggregation."""

    def test_counts_only_queried_user(self, history):
        """Test totals ignore other users' alerts and rows."""
        alerts, results = history

        stats = create_statistics(
            "user_1", "daily", alerts, results, NOW - timedelta(days=1), NOW, now=NOW
        )

        assert stats.total_sent == 2
        assert stats.total_delivered == 2
        assert stats.total_failed == 1

    def test_breakdowns(self, history):
        """Test per-type and per-channel counts."""
        alerts, results = history

        stats = create_statistics(
            "user_1", "weekly", alerts, results, NOW - timedelta(days=7), NOW, now=NOW
        )

        assert stats.by_type["price_drop"].sent == 1
        assert stats.by_type["price_drop"].delivered == 1
        assert stats.by_type["price_drop"].failed == 1
        assert stats.by_type["back_in_stock"].delivered == 1
        assert stats.by_channel["push"].sent == 2
        assert stats.by_channel["push"].delivered == 2
        assert stats.by_channel["email"].failed == 1
        assert "sms" not in stats.by_channel

    def test_average_over_successful_rows(self, history):
        """Test the average delivery time ignores failed rows."""
        alerts, results = history

        stats = create_statistics(
            "user_1", "daily", alerts, results, NOW - timedelta(days=1), NOW, now=NOW
        )

        assert stats.average_delivery_time == 200.0

    def test_delivery_rate(self, history):
        """Test the rate is delivered rows over alerts sent, capped at one."""
        alerts, results = history

        stats = create_statistics(
            "user_1", "daily", alerts, results, NOW - timedelta(days=1), NOW, now=NOW
        )

        assert stats.delivery_rate == 1.0

    def test_partial_delivery_rate(self, make_alert):
        """Test a rate below one when some alerts never delivered."""
        delivered = make_alert()
        failed = make_alert()
        results = [
            _result(delivered.id, NotificationChannel.PUSH, DeliveryOutcome.SUCCESS),
            _result(failed.id, NotificationChannel.PUSH, DeliveryOutcome.FAILED),
        ]

        stats = create_statistics(
            "user_1", "daily", [delivered, failed], results, NOW, NOW, now=NOW
        )

        assert stats.delivery_rate == 0.5

    def test_empty_history(self):
        """Test a user with no alerts gets zeroed statistics."""
        stats = create_statistics("user_1", "monthly", [], [], NOW, NOW, now=NOW)

        assert stats.total_sent == 0
        assert stats.delivery_rate == 0.0
        assert stats.average_delivery_time == 0.0
        assert stats.period == StatisticsPeriod.MONTHLY
        assert stats.generated_at == NOW

    def test_invalid_period(self):
        """Test an unknown period is rejected."""
        with pytest.raises(ValueError):
            create_statistics("user_1", "yearly", [], [], NOW, NOW)


class TestPeriodBounds:
    """Test default reporting windows."""

    def test_daily(self):
        """Test daily windows start at UTC midnight."""
        assert period_bounds("daily", NOW) == (datetime(2024, 6, 12, tzinfo=UTC), NOW)

    def test_weekly(self):
        """Test weekly windows cover the last seven days."""
        assert period_bounds(StatisticsPeriod.WEEKLY, NOW) == (
            NOW - timedelta(days=7),
            NOW,
        )

    def test_monthly(self):
        """Test monthly windows start on the first of the month."""
        assert period_bounds("monthly", NOW)[0] == datetime(2024, 6, 1, tzinfo=UTC)


class TestDeliveryReport:
    """Test per-alert delivery reports."""

    def test_report(self, history):
        """Test a report only includes the alert's own rows."""
        (alert, _, _), results = history

        report = create_delivery_report(alert, results)

        assert report.total_deliveries == 2
        assert report.successful_deliveries == 1
        assert report.failed_deliveries == 1
        assert report.average_delivery_time == 100.0
