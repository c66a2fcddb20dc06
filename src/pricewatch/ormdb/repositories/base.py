"""Base repository class with common functionality."""

from datetime import UTC, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..database import get_session_sync


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Re-attach UTC to a datetime read back from a naive column."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_db(value: Optional[datetime]) -> Optional[datetime]:
    """Store datetimes as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class BaseRepository:
    """Base repository class providing common session management."""

    def __init__(self, session: Optional[Session] = None):
        self.session = session or get_session_sync()
        self._external_session = session is not None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self._external_session:
            self.session.close()
