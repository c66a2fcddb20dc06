"""Shared test configuration and fixtures."""

import asyncio
import os
import sys
import tempfile
from datetime import UTC, datetime, timedelta
from typing import List, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.append("src")
from pricewatch.alerts.channels import ChannelSendResult
from pricewatch.alerts.engine import AlertEngine
from pricewatch.alerts.models import NotificationChannel
from pricewatch.alerts.preferences import NotificationPreferences
from pricewatch.alerts.prioritizer import create_alert
from pricewatch.alerts.stores import (
    InMemoryAlertStore,
    InMemoryConditionStore,
    InMemoryDeliveryLog,
    InMemoryPreferencesStore,
)
from pricewatch.config.settings import Settings, get_settings
from pricewatch.events import EventBus
from pricewatch.exceptions import ChannelDeliveryError

# Monday, 12:00 UTC
FROZEN_NOW = datetime(2024, 6, 3, 12, 0, tzinfo=UTC)


class FrozenClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime = FROZEN_NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


class RecordingSender:
    """Channel sender double.

    ``outcome`` is one of ``success``, ``failure`` (returns a failed result)
    or ``raise`` (raises ChannelDeliveryError).
    """

    def __init__(self, outcome: str = "success", delay: float = 0.0):
        self.outcome = outcome
        self.delay = delay
        self.error = "provider rejected message"
        self.calls: List[Tuple[str, NotificationChannel]] = []

    async def send(self, alert, channel):
        self.calls.append((alert.id, channel))
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.outcome == "raise":
            raise ChannelDeliveryError(channel.value, self.error)
        if self.outcome == "failure":
            return ChannelSendResult(
                success=False, error=self.error, response_time_ms=5.0
            )
        return ChannelSendResult(
            success=True,
            message_id=f"{channel.value}-{len(self.calls)}",
            response_time_ms=120.0,
        )


@pytest.fixture
def frozen_clock():
    """Clock frozen at a fixed Monday noon UTC."""
    return FrozenClock()


@pytest.fixture
def test_settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        environment="testing",
        channel_send_timeout_seconds=0.2,
        dispatch_batch_size=2,
        cooldown_minutes=0,
        database_url="sqlite://",
    )


@pytest.fixture
def user_preferences():
    """Preferences with every channel enabled and default limits."""
    return NotificationPreferences(
        user_id="user_1",
        enabled_channels=[
            NotificationChannel.PUSH,
            NotificationChannel.EMAIL,
            NotificationChannel.SMS,
        ],
    )


@pytest.fixture
def alert_store():
    return InMemoryAlertStore()


@pytest.fixture
def delivery_log():
    return InMemoryDeliveryLog()


@pytest.fixture
def condition_store():
    return InMemoryConditionStore()


@pytest.fixture
def preferences_store(user_preferences):
    return InMemoryPreferencesStore([user_preferences])


@pytest.fixture
def senders():
    """One successful sender per channel."""
    return {channel: RecordingSender() for channel in NotificationChannel}


@pytest.fixture
def event_bus():
    return EventBus("test")


@pytest.fixture
def make_alert(frozen_clock):
    """Factory for pending alerts created at the frozen time."""

    def _make_alert(**overrides):
        data = {
            "user_id": "user_1",
            "product_id": "product_1",
            "type": "price_drop",
            "payload": {"percentage_drop": 20.0},
        }
        data.update(overrides)
        return create_alert(data, now=frozen_clock.now())

    return _make_alert


@pytest.fixture
def alert_engine(
    alert_store,
    delivery_log,
    preferences_store,
    senders,
    condition_store,
    frozen_clock,
    event_bus,
    test_settings,
):
    """Engine wired to in-memory stores and recording senders."""
    return AlertEngine(
        alert_store=alert_store,
        delivery_log=delivery_log,
        preferences_store=preferences_store,
        senders=senders,
        condition_store=condition_store,
        clock=frozen_clock,
        event_bus=event_bus,
        settings=test_settings,
    )


@pytest.fixture
def isolated_db():
    """Create an isolated database for testing."""
    temp_fd, temp_path = tempfile.mkstemp(suffix=".db")
    db_url = f"sqlite:///{temp_path}"

    try:
        engine = create_engine(db_url, connect_args={"check_same_thread": False})
        SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
        )

        from pricewatch.ormdb import Base, init_db

        init_db(engine)
        assert Base.metadata.tables

        yield {
            "engine": engine,
            "session_factory": SessionLocal,
            "db_url": db_url,
            "db_path": temp_path,
        }

        engine.dispose()

    finally:
        try:
            os.close(temp_fd)
            os.unlink(temp_path)
        except OSError:
            pass


@pytest.fixture
def db_session(isolated_db):
    """Session bound to the isolated test database."""
    session = isolated_db["session_factory"]()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clean_settings_cache():
    """Clear the settings cache between tests to avoid state pollution."""
    yield
    get_settings.cache_clear()
