"""Repository for watch conditions."""

from datetime import datetime
from typing import List, Optional

from ...alerts.conditions import AlertCondition, condition_adapter
from ..models import AlertConditionRecord
from .base import BaseRepository, as_utc, to_db

_PARAMETER_COLUMNS = ("target_price", "percentage", "threshold")


class AlertConditionRepository(BaseRepository):
    """SQLAlchemy-backed condition store."""

    @staticmethod
    def _to_model(record: AlertConditionRecord) -> AlertCondition:
        fields = {
            "id": record.id,
            "user_id": record.user_id,
            "product_id": record.product_id,
            "subtype": record.subtype,
            "is_active": record.is_active,
            "total_triggers": record.total_triggers,
            "created_at": as_utc(record.created_at),
            "triggered_at": as_utc(record.triggered_at),
            "expires_at": as_utc(record.expires_at),
        }
        for column in _PARAMETER_COLUMNS:
            value = getattr(record, column)
            if value is not None:
                fields[column] = value

        return condition_adapter.validate_python(fields)

    def add(self, condition: AlertCondition) -> AlertCondition:
        """Persist a new condition."""
        record = AlertConditionRecord(
            id=condition.id,
            user_id=condition.user_id,
            product_id=condition.product_id,
            subtype=condition.subtype,
            is_active=condition.is_active,
            total_triggers=condition.total_triggers,
            created_at=to_db(condition.created_at),
            triggered_at=to_db(condition.triggered_at),
            expires_at=to_db(condition.expires_at),
        )
        for column in _PARAMETER_COLUMNS:
            setattr(record, column, getattr(condition, column, None))

        self.session.add(record)
        self.session.commit()
        return condition

    def get(self, condition_id: str) -> Optional[AlertCondition]:
        record = self.session.get(AlertConditionRecord, condition_id)
        return self._to_model(record) if record else None

    def record_trigger(
        self, condition_id: str, now: datetime
    ) -> Optional[AlertCondition]:
        """Increment the trigger count and stamp the trigger time."""
        record = self.session.get(AlertConditionRecord, condition_id)
        if record is None:
            return None

        record.total_triggers = record.total_triggers + 1
        record.triggered_at = to_db(now)
        self.session.commit()
        return self._to_model(record)

    def deactivate(self, condition_id: str) -> bool:
        record = self.session.get(AlertConditionRecord, condition_id)
        if record is None:
            return False

        record.is_active = False
        self.session.commit()
        return True

    def list_active(self, product_id: Optional[str] = None) -> List[AlertCondition]:
        """Active conditions, optionally for one product."""
        query = self.session.query(AlertConditionRecord).filter(
            AlertConditionRecord.is_active.is_(True)
        )
        if product_id is not None:
            query = query.filter(AlertConditionRecord.product_id == product_id)

        return [self._to_model(record) for record in query.all()]
