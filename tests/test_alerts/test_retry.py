"""Tests for retry policy and the APScheduler-backed retry scheduler."""

import asyncio
import sys
from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest

sys.path.append("src")
from pricewatch.alerts.models import AlertStatus
from pricewatch.alerts.retry import (
    RetryPolicy,
    RetryScheduler,
    calculate_next_retry_time,
    is_retry_eligible,
    should_retry,
)
from pricewatch.config.settings import Settings


class TestRetryPolicy:
    """Test backoff delays."""

    @pytest.mark.parametrize(
        "attempts,minutes",
        [(0, 5), (1, 10), (2, 20), (3, 40), (8, 1280)],
    )
    def test_exponential_delay(self, attempts, minutes):
        """Test delays double with each failed round."""
        assert RetryPolicy().delay_for(attempts) == timedelta(minutes=minutes)

    @pytest.mark.parametrize("attempts", [9, 10, 63, 64, 10_000])
    def test_delay_capped(self, attempts):
        """Test delays never exceed 24 hours."""
        assert RetryPolicy().delay_for(attempts) == timedelta(hours=24)

    def test_from_settings(self):
        """Test the policy reads its bounds from settings."""
        settings = Settings(
            _env_file=None, retry_base_delay_minutes=1, retry_max_delay_hours=2
        )
        policy = RetryPolicy.from_settings(settings)

        assert policy.base_delay == timedelta(minutes=1)
        assert policy.max_delay == timedelta(hours=2)
        assert policy.delay_for(10) == timedelta(hours=2)


class TestNextRetryTime:
    """Test retry scheduling arithmetic."""

    def test_two_attempts(self, make_alert):
        """Test two failed rounds retry 20 minutes after creation."""
        alert = make_alert()
        alert.delivery_attempts = 2

        assert calculate_next_retry_time(alert) == alert.created_at + timedelta(
            minutes=20
        )

    def test_ten_attempts_capped(self, make_alert):
        """Test ten failed rounds are capped at 24 hours after creation."""
        alert = make_alert(max_delivery_attempts=10)
        alert.delivery_attempts = 10

        assert calculate_next_retry_time(alert) == alert.created_at + timedelta(
            hours=24
        )

    def test_based_on_creation_time(self, make_alert):
        """Test the delay is measured from creation, not from now."""
        alert = make_alert()
        alert.delivery_attempts = 1

        assert calculate_next_retry_time(alert, RetryPolicy()) == datetime(
            2024, 6, 3, 12, 10, tzinfo=UTC
        )


class TestShouldRetry:
    """Test retry eligibility after a failed round."""

    def test_failed_with_attempts_left(self, make_alert):
        """Test failed alerts with budget left are retried."""
        alert = make_alert()
        alert.delivery_attempts = 1
        alert.status = AlertStatus.FAILED

        assert should_retry(alert)

    def test_failed_and_exhausted(self, make_alert):
        """Test exhausted alerts are not retried."""
        alert = make_alert()
        alert.delivery_attempts = 3
        alert.status = AlertStatus.FAILED

        assert not should_retry(alert)

    @pytest.mark.parametrize(
        "status", [AlertStatus.PENDING, AlertStatus.DELIVERED, AlertStatus.EXPIRED]
    )
    def test_only_failed_alerts(self, make_alert, status):
        """Test only failed alerts are retry candidates."""
        alert = make_alert()
        alert.status = status

        assert not should_retry(alert)


class TestRetryEligibility:
    """Test the liveness re-check made before a retry fires."""

    def test_pending_alert_is_eligible(self, make_alert, frozen_clock):
        """Test a pending alert without a condition is eligible."""
        assert is_retry_eligible(make_alert(), None, frozen_clock.now())

    def test_missing_alert(self, frozen_clock):
        """Test a deleted alert is not eligible."""
        assert not is_retry_eligible(None, None, frozen_clock.now())

    def test_expired_alert(self, make_alert, frozen_clock):
        """Test an alert past its expiry is not eligible."""
        alert = make_alert(expires_at=frozen_clock.now() - timedelta(seconds=1))

        assert not is_retry_eligible(alert, None, frozen_clock.now())

    def test_deactivated_condition(self, make_alert, frozen_clock):
        """Test a deactivated condition blocks the retry."""
        condition = Mock()
        condition.is_live.return_value = False

        assert not is_retry_eligible(make_alert(), condition, frozen_clock.now())
        condition.is_live.assert_called_once_with(frozen_clock.now())


class TestRetrySchedulerWithMock:
    """Test RetryScheduler against a mocked APScheduler."""

    def test_schedule_adds_date_job(self):
        """Test a one-shot job is added under the alert's job id."""
        mock_scheduler = Mock()
        scheduler = RetryScheduler(mock_scheduler)
        callback = Mock()
        run_at = datetime(2024, 6, 3, 12, 20, tzinfo=UTC)

        scheduler.schedule("alert_1", run_at, callback)

        mock_scheduler.add_job.assert_called_once()
        args, kwargs = mock_scheduler.add_job.call_args
        assert args[0] is callback
        assert kwargs["trigger"] == "date"
        assert kwargs["run_date"] == run_at
        assert kwargs["args"] == ["alert_1"]
        assert kwargs["id"] == "alert-retry:alert_1"
        assert kwargs["replace_existing"] is True

    def test_cancel_existing_job(self):
        """Test cancelling removes the job."""
        mock_scheduler = Mock()
        job = Mock()
        mock_scheduler.get_job.return_value = job

        assert RetryScheduler(mock_scheduler).cancel("alert_1") is True
        mock_scheduler.get_job.assert_called_once_with("alert-retry:alert_1")
        job.remove.assert_called_once()

    def test_cancel_missing_job(self):
        """Test cancelling an unknown job is a no-op."""
        mock_scheduler = Mock()
        mock_scheduler.get_job.return_value = None

        assert RetryScheduler(mock_scheduler).cancel("alert_1") is False

    def test_pending_jobs_filters_prefix(self):
        """Test only retry jobs are listed."""
        mock_scheduler = Mock()
        mock_scheduler.get_jobs.return_value = [
            Mock(id="alert-retry:a1"),
            Mock(id="cleanup"),
            Mock(id="alert-retry:a2"),
        ]

        assert RetryScheduler(mock_scheduler).pending_jobs() == ["a1", "a2"]

    def test_start_and_shutdown(self):
        """Test lifecycle calls respect the running flag."""
        mock_scheduler = Mock()
        mock_scheduler.running = False
        scheduler = RetryScheduler(mock_scheduler)

        scheduler.start()
        mock_scheduler.start.assert_called_once()

        scheduler.shutdown()
        mock_scheduler.shutdown.assert_not_called()

        mock_scheduler.running = True
        scheduler.shutdown()
        mock_scheduler.shutdown.assert_called_once_with(wait=False)


class TestRetrySchedulerIntegration:
    """Test RetryScheduler with a real AsyncIOScheduler."""

    @pytest.mark.asyncio
    async def test_job_fires_callback(self):
        """Test a scheduled retry invokes the coroutine callback."""
        fired = asyncio.Event()
        received = []

        async def callback(alert_id):
            received.append(alert_id)
            fired.set()

        scheduler = RetryScheduler()
        scheduler.start()
        try:
            scheduler.schedule(
                "alert_1", datetime.now(UTC) + timedelta(milliseconds=50), callback
            )
            await asyncio.wait_for(fired.wait(), timeout=5)
        finally:
            scheduler.shutdown()

        assert received == ["alert_1"]

    @pytest.mark.asyncio
    async def test_reschedule_replaces_job(self):
        """Test scheduling twice keeps a single job per alert."""
        scheduler = RetryScheduler()
        scheduler.start()
        try:
            later = datetime.now(UTC) + timedelta(hours=1)

            async def callback(alert_id):
                return alert_id

            scheduler.schedule("alert_1", later, callback)
            scheduler.schedule("alert_1", later + timedelta(hours=1), callback)

            assert scheduler.pending_jobs() == ["alert_1"]
            assert scheduler.cancel("alert_1") is True
            assert scheduler.pending_jobs() == []
        finally:
            scheduler.shutdown()
