"""Store interfaces used by the engine, with in-memory implementations."""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from .conditions import AlertCondition
from .models import Alert, AlertDeliveryResult, AlertStatus
from .preferences import NotificationPreferences


class AlertStore(Protocol):
    """Persistence for alerts."""

    def save(self, alert: Alert) -> Alert: ...

    def get(self, alert_id: str) -> Optional[Alert]: ...

    def list_for_user(
        self,
        user_id: str,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> List[Alert]: ...

    def list_due(self, now: datetime) -> List[Alert]: ...

    def recent_for_product(
        self, user_id: str, product_id: str, since: datetime
    ) -> List[Alert]: ...


class DeliveryLogStore(Protocol):
    """Append-only log of channel sends."""

    def append(self, result: AlertDeliveryResult) -> None: ...

    def list_for_alert(self, alert_id: str) -> List[AlertDeliveryResult]: ...

    def list_for_alerts(
        self, alert_ids: Iterable[str]
    ) -> List[AlertDeliveryResult]: ...


class ConditionStore(Protocol):
    """Read access to watch conditions plus trigger bookkeeping."""

    def get(self, condition_id: str) -> Optional[AlertCondition]: ...

    def record_trigger(
        self, condition_id: str, now: datetime
    ) -> Optional[AlertCondition]: ...


class PreferencesStore(Protocol):
    """Read-only access to user preferences."""

    def get(self, user_id: str) -> Optional[NotificationPreferences]: ...


class InMemoryAlertStore:
    """Dictionary-backed alert store; copies on every read and write."""

    def __init__(self):
        self._alerts: Dict[str, Alert] = {}

    def save(self, alert: Alert) -> Alert:
        self._alerts[alert.id] = alert.model_copy(deep=True)
        return alert

    def get(self, alert_id: str) -> Optional[Alert]:
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    def list_for_user(
        self,
        user_id: str,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> List[Alert]:
        return [
            alert.model_copy(deep=True)
            for alert in self._alerts.values()
            if alert.user_id == user_id
            and (created_from is None or alert.created_at >= created_from)
            and (created_to is None or alert.created_at <= created_to)
        ]

    def list_due(self, now: datetime) -> List[Alert]:
        due = [
            alert
            for alert in self._alerts.values()
            if alert.status == AlertStatus.PENDING and alert.is_due(now)
        ]
        due.sort(key=lambda alert: alert.scheduled_at or alert.created_at)
        return [alert.model_copy(deep=True) for alert in due]

    def recent_for_product(
        self, user_id: str, product_id: str, since: datetime
    ) -> List[Alert]:
        """Alerts for a user and product delivered at or after ``since``."""
        return [
            alert.model_copy(deep=True)
            for alert in self._alerts.values()
            if alert.user_id == user_id
            and alert.product_id == product_id
            and alert.delivered_at is not None
            and alert.delivered_at >= since
        ]


class InMemoryDeliveryLog:
    """List-backed delivery log."""

    def __init__(self):
        self._results: List[AlertDeliveryResult] = []

    def append(self, result: AlertDeliveryResult) -> None:
        self._results.append(result)

    def list_for_alert(self, alert_id: str) -> List[AlertDeliveryResult]:
        return [r for r in self._results if r.alert_id == alert_id]

    def list_for_alerts(self, alert_ids: Iterable[str]) -> List[AlertDeliveryResult]:
        wanted = set(alert_ids)
        return [r for r in self._results if r.alert_id in wanted]

    def __len__(self) -> int:
        return len(self._results)


class InMemoryConditionStore:
    """Dictionary-backed condition store."""

    def __init__(self, conditions: Iterable[AlertCondition] = ()):
        self._conditions: Dict[str, AlertCondition] = {c.id: c for c in conditions}

    def add(self, condition: AlertCondition) -> AlertCondition:
        self._conditions[condition.id] = condition.model_copy(deep=True)
        return condition

    def get(self, condition_id: str) -> Optional[AlertCondition]:
        condition = self._conditions.get(condition_id)
        return condition.model_copy(deep=True) if condition else None

    def record_trigger(
        self, condition_id: str, now: datetime
    ) -> Optional[AlertCondition]:
        condition = self._conditions.get(condition_id)
        if condition is None:
            return None

        updated = condition.model_copy(
            update={
                "total_triggers": condition.total_triggers + 1,
                "triggered_at": now,
            }
        )
        self._conditions[condition_id] = updated
        return updated.model_copy(deep=True)

    def deactivate(self, condition_id: str) -> bool:
        condition = self._conditions.get(condition_id)
        if condition is None:
            return False
        self._conditions[condition_id] = condition.model_copy(
            update={"is_active": False}
        )
        return True


class InMemoryPreferencesStore:
    """Dictionary-backed preferences lookup."""

    def __init__(self, preferences: Iterable[NotificationPreferences] = ()):
        self._preferences: Dict[str, NotificationPreferences] = {
            p.user_id: p for p in preferences
        }

    def set(self, preferences: NotificationPreferences) -> None:
        self._preferences[preferences.user_id] = preferences

    def get(self, user_id: str) -> Optional[NotificationPreferences]:
        return self._preferences.get(user_id)
