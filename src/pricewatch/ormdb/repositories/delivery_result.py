"""Repository for the append-only delivery log."""

from typing import Iterable, List

from ...alerts.models import AlertDeliveryResult
from ..models import DeliveryResultRecord
from .base import BaseRepository, as_utc, to_db


class DeliveryResultRepository(BaseRepository):
    """SQLAlchemy-backed delivery log."""

    @staticmethod
    def _to_model(record: DeliveryResultRecord) -> AlertDeliveryResult:
        return AlertDeliveryResult(
            alert_id=record.alert_id,
            channel=record.channel,
            outcome=record.outcome,
            message_id=record.message_id,
            delivered_at=as_utc(record.delivered_at),
            response_time_ms=record.response_time_ms,
            error=record.error,
        )

    def append(self, result: AlertDeliveryResult) -> None:
        """Record one channel send."""
        self.session.add(
            DeliveryResultRecord(
                alert_id=result.alert_id,
                channel=result.channel.value,
                outcome=result.outcome.value,
                message_id=result.message_id,
                delivered_at=to_db(result.delivered_at),
                response_time_ms=result.response_time_ms,
                error=result.error,
            )
        )
        self.session.commit()

    def list_for_alert(self, alert_id: str) -> List[AlertDeliveryResult]:
        records = (
            self.session.query(DeliveryResultRecord)
            .filter(DeliveryResultRecord.alert_id == alert_id)
            .order_by(DeliveryResultRecord.id)
            .all()
        )
        return [self._to_model(record) for record in records]

    def list_for_alerts(self, alert_ids: Iterable[str]) -> List[AlertDeliveryResult]:
        alert_ids = list(alert_ids)
        if not alert_ids:
            return []

        records = (
            self.session.query(DeliveryResultRecord)
            .filter(DeliveryResultRecord.alert_id.in_(alert_ids))
            .order_by(DeliveryResultRecord.id)
            .all()
        )
        return [self._to_model(record) for record in records]
