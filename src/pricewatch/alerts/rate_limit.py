"""Per-user sent counters shared by concurrent dispatches."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Tuple

from ..clock import Clock, ensure_utc
from ..config.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SentCounts:
    """Sends in the current hour and day for one user."""

    hour: int = 0
    day: int = 0


class SentCounter:
    """Hourly and daily sent counts, bucketed by the clock's UTC hour and day.

    ``try_reserve`` checks and increments under a single lock so two alerts
    for the same user can never both take the last slot.

    Example:
        counter = SentCounter(clock)
        approved = await counter.try_reserve(
            "user_1", lambda counts: counts.hour < 10
        )
    """

    def __init__(self, clock: Clock):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._hourly: Dict[Tuple[str, datetime], int] = {}
        self._daily: Dict[Tuple[str, datetime], int] = {}

    def _buckets(self) -> Tuple[datetime, datetime]:
        now = ensure_utc(self._clock.now())
        hour = now.replace(minute=0, second=0, microsecond=0)
        day = hour.replace(hour=0)
        return hour, day

    def _prune(self, hour: datetime, day: datetime) -> None:
        self._hourly = {k: v for k, v in self._hourly.items() if k[1] == hour}
        self._daily = {k: v for k, v in self._daily.items() if k[1] == day}

    def counts(self, user_id: str) -> SentCounts:
        """Current counts for a user."""
        hour, day = self._buckets()
        return SentCounts(
            hour=self._hourly.get((user_id, hour), 0),
            day=self._daily.get((user_id, day), 0),
        )

    async def try_reserve(
        self, user_id: str, check: Callable[[SentCounts], bool]
    ) -> bool:
        """
        Atomically evaluate ``check`` and, if it passes, count one send.

        Args:
            user_id: User being sent to
            check: Predicate over the user's current counts

        Returns:
            True if the slot was reserved
        """
        async with self._lock:
            hour, day = self._buckets()
            self._prune(hour, day)

            counts = SentCounts(
                hour=self._hourly.get((user_id, hour), 0),
                day=self._daily.get((user_id, day), 0),
            )
            if not check(counts):
                return False

            self._hourly[(user_id, hour)] = counts.hour + 1
            self._daily[(user_id, day)] = counts.day + 1

            logger.debug(
                "Send slot reserved",
                user_id=user_id,
                hour_count=counts.hour + 1,
                day_count=counts.day + 1,
            )
            return True
