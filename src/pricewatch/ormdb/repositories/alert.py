"""Repository for alert persistence."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_

from ...alerts.models import Alert, AlertStatus
from ..models import AlertRecord
from .base import BaseRepository, as_utc, to_db


class AlertRepository(BaseRepository):
    """SQLAlchemy-backed alert store."""

    @staticmethod
    def _to_model(record: AlertRecord) -> Alert:
        return Alert(
            id=record.id,
            user_id=record.user_id,
            product_id=record.product_id,
            type=record.type,
            priority=record.priority,
            status=record.status,
            title=record.title,
            message=record.message,
            channels=record.channels,
            payload=record.payload,
            delivery_attempts=record.delivery_attempts,
            max_delivery_attempts=record.max_delivery_attempts,
            scheduled_at=as_utc(record.scheduled_at),
            created_at=as_utc(record.created_at),
            delivered_at=as_utc(record.delivered_at),
            expires_at=as_utc(record.expires_at),
            condition_id=record.condition_id,
        )

    @staticmethod
    def _apply(record: AlertRecord, alert: Alert) -> None:
        record.user_id = alert.user_id
        record.product_id = alert.product_id
        record.type = alert.type.value
        record.priority = alert.priority.value
        record.status = alert.status.value
        record.title = alert.title
        record.message = alert.message
        record.channels = [channel.value for channel in alert.channels]
        record.payload = alert.payload.model_dump(mode="json")
        record.delivery_attempts = alert.delivery_attempts
        record.max_delivery_attempts = alert.max_delivery_attempts
        record.scheduled_at = to_db(alert.scheduled_at)
        record.created_at = to_db(alert.created_at)
        record.delivered_at = to_db(alert.delivered_at)
        record.expires_at = to_db(alert.expires_at)
        record.condition_id = alert.condition_id

    def save(self, alert: Alert) -> Alert:
        """Insert or update an alert."""
        record = self.session.get(AlertRecord, alert.id)
        if record is None:
            record = AlertRecord(id=alert.id)
            self.session.add(record)

        self._apply(record, alert)
        self.session.commit()
        return alert

    def get(self, alert_id: str) -> Optional[Alert]:
        record = self.session.get(AlertRecord, alert_id)
        return self._to_model(record) if record else None

    def list_for_user(
        self,
        user_id: str,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> List[Alert]:
        """Alerts for a user, optionally limited to a creation window."""
        query = self.session.query(AlertRecord).filter(AlertRecord.user_id == user_id)

        if created_from is not None:
            query = query.filter(AlertRecord.created_at >= to_db(created_from))
        if created_to is not None:
            query = query.filter(AlertRecord.created_at <= to_db(created_to))

        return [
            self._to_model(record)
            for record in query.order_by(AlertRecord.created_at).all()
        ]

    def list_due(self, now: datetime) -> List[Alert]:
        """Pending alerts that are unscheduled or scheduled at or before ``now``."""
        records = (
            self.session.query(AlertRecord)
            .filter(
                AlertRecord.status == AlertStatus.PENDING.value,
                or_(
                    AlertRecord.scheduled_at.is_(None),
                    AlertRecord.scheduled_at <= to_db(now),
                ),
            )
            .order_by(func.coalesce(AlertRecord.scheduled_at, AlertRecord.created_at))
            .all()
        )
        return [self._to_model(record) for record in records]

    def recent_for_product(
        self, user_id: str, product_id: str, since: datetime
    ) -> List[Alert]:
        """Alerts for a user and product delivered at or after ``since``."""
        records = (
            self.session.query(AlertRecord)
            .filter(
                AlertRecord.user_id == user_id,
                AlertRecord.product_id == product_id,
                AlertRecord.delivered_at.is_not(None),
                AlertRecord.delivered_at >= to_db(since),
            )
            .order_by(AlertRecord.delivered_at.desc())
            .all()
        )
        return [self._to_model(record) for record in records]

    def count_by_status(self, user_id: str) -> dict:
        """Number of alerts per status for a user."""
        rows = (
            self.session.query(AlertRecord.status, func.count(AlertRecord.id))
            .filter(AlertRecord.user_id == user_id)
            .group_by(AlertRecord.status)
            .all()
        )
        return {status: count for status, count in rows}
