"""Repository classes for database operations using SQLAlchemy ORM."""

from .alert import AlertRepository
from .alert_condition import AlertConditionRepository
from .base import BaseRepository
from .delivery_result import DeliveryResultRepository

__all__ = [
    "BaseRepository",
    "AlertRepository",
    "AlertConditionRepository",
    "DeliveryResultRepository",
]
