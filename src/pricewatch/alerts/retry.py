"""Retry policy and scheduling of re-dispatch attempts."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config.logging import get_logger
from .conditions import AlertCondition
from .models import Alert, AlertStatus

if TYPE_CHECKING:
    from ..config.settings import Settings

logger = get_logger(__name__)

BASE_RETRY_DELAY = timedelta(minutes=5)
MAX_RETRY_DELAY = timedelta(hours=24)

RETRY_JOB_PREFIX = "alert-retry:"


@dataclass(frozen=True)
class RetryPolicy:
    """Capped exponential backoff."""

    base_delay: timedelta = BASE_RETRY_DELAY
    max_delay: timedelta = MAX_RETRY_DELAY

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        return cls(
            base_delay=timedelta(minutes=settings.retry_base_delay_minutes),
            max_delay=timedelta(hours=settings.retry_max_delay_hours),
        )

    def delay_for(self, attempts: int) -> timedelta:
        """Backoff delay after ``attempts`` failed rounds."""
        base = self.base_delay.total_seconds()
        cap = self.max_delay.total_seconds()
        # Compare before building a timedelta; 2**attempts grows without bound
        if attempts >= 64 or base * 2**attempts >= cap:
            return self.max_delay
        return timedelta(seconds=base * 2**attempts)


def should_retry(alert: Alert) -> bool:
    """True for failed alerts that still have attempts left."""
    return (
        alert.status == AlertStatus.FAILED
        and alert.delivery_attempts < alert.max_delivery_attempts
    )


def calculate_next_retry_time(
    alert: Alert, policy: RetryPolicy = RetryPolicy()
) -> datetime:
    """
    Compute when a failed alert should be retried.

    The delay is measured from the alert's creation time, not from the most
    recent attempt.

    Args:
        alert: Alert being retried
        policy: Backoff policy

    Returns:
        Time of the next attempt
    """
    return alert.created_at + policy.delay_for(alert.delivery_attempts)


def is_retry_eligible(
    alert: Optional[Alert],
    condition: Optional[AlertCondition],
    now: datetime,
) -> bool:
    """Liveness check made immediately before a scheduled retry fires."""
    if alert is None or alert.status != AlertStatus.PENDING:
        return False
    if alert.is_expired(now):
        return False
    if condition is not None and not condition.is_live(now):
        return False
    return True


class RetryScheduler:
    """Schedules one-shot retry jobs on an APScheduler ``AsyncIOScheduler``."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(component="retry_scheduler")

    @staticmethod
    def job_id(alert_id: str) -> str:
        return f"{RETRY_JOB_PREFIX}{alert_id}"

    def start(self) -> None:
        """Start the underlying scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info("Retry scheduler started")

    def shutdown(self, wait: bool = False) -> None:
        """Stop the underlying scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            self.logger.info("Retry scheduler shutdown complete")

    def schedule(
        self,
        alert_id: str,
        run_at: datetime,
        callback: Callable[[str], Awaitable[object]],
    ) -> None:
        """
        Schedule ``callback(alert_id)`` to run once at ``run_at``.

        An existing retry job for the same alert is replaced.
        """
        self.scheduler.add_job(
            callback,
            trigger="date",
            run_date=run_at,
            args=[alert_id],
            id=self.job_id(alert_id),
            name=f"Retry alert {alert_id}",
            replace_existing=True,
            misfire_grace_time=None,
        )

        self.logger.info(
            "Retry scheduled", alert_id=alert_id, run_at=run_at.isoformat()
        )

    def cancel(self, alert_id: str) -> bool:
        """Remove a scheduled retry; returns False when none exists."""
        job = self.scheduler.get_job(self.job_id(alert_id))
        if job is None:
            return False

        job.remove()
        self.logger.info("Retry cancelled", alert_id=alert_id)
        return True

    def pending_jobs(self) -> List[str]:
        """Alert ids with a scheduled retry."""
        return [
            job.id[len(RETRY_JOB_PREFIX) :]
            for job in self.scheduler.get_jobs()
            if job.id.startswith(RETRY_JOB_PREFIX)
        ]
