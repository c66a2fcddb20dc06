"""Database module for SQLAlchemy ORM integration."""

from .database import (
    Base,
    create_engine_from_settings,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    get_session_sync,
    init_db,
    reset_engine,
)
from .models import AlertConditionRecord, AlertRecord, DeliveryResultRecord
from .repositories import (
    AlertConditionRepository,
    AlertRepository,
    BaseRepository,
    DeliveryResultRepository,
)

__all__ = [
    # Database components
    "Base",
    "create_engine_from_settings",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "get_session_sync",
    "init_db",
    "reset_engine",
    # Models
    "AlertRecord",
    "DeliveryResultRecord",
    "AlertConditionRecord",
    # Repositories
    "BaseRepository",
    "AlertRepository",
    "AlertConditionRepository",
    "DeliveryResultRepository",
]
