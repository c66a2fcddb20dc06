"""Alert creation: priority, default channels and condition factories."""

from datetime import UTC, datetime
from typing import Any, List, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..config.logging import get_logger
from ..exceptions import ValidationError
from .conditions import (
    AlertCondition,
    price_condition_adapter,
    stock_condition_adapter,
)
from .models import (
    Alert,
    AlertInput,
    AlertPayload,
    AlertPriority,
    AlertStatus,
    AlertType,
    NotificationChannel,
    PriceDropPayload,
    default_payload,
)
from .templates import render_default_message, render_default_title

logger = get_logger(__name__)

# Price-drop priority bands, in percent. 10% -> medium and 35% -> urgent are
# fixed regression points.
URGENT_DROP_PERCENT = 30.0
HIGH_DROP_PERCENT = 15.0

DEFAULT_MAX_DELIVERY_ATTEMPTS = 3

_payload_adapter = TypeAdapter(AlertPayload)


def _parse_alert_type(alert_type: Union[AlertType, str]) -> AlertType:
    try:
        return AlertType(alert_type)
    except ValueError:
        raise ValidationError(
            message=f"Unknown alert type: {alert_type}",
            field_errors={"type": f"'{alert_type}' is not a recognised alert type"},
        )


def _coerce_payload(
    alert_type: AlertType, payload: Union[AlertPayload, Mapping[str, Any], None]
) -> Optional[AlertPayload]:
    if payload is None or isinstance(payload, BaseModel):
        return payload
    try:
        return _payload_adapter.validate_python({"type": alert_type.value, **payload})
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, "Invalid alert payload")


def determine_priority(
    alert_type: Union[AlertType, str],
    payload: Union[AlertPayload, Mapping[str, Any], None] = None,
) -> AlertPriority:
    """
    Determine alert priority from its type and payload.

    Args:
        alert_type: Alert type
        payload: Type-specific payload (model or mapping)

    Returns:
        Priority for the alert
    """
    alert_type = _parse_alert_type(alert_type)
    payload = _coerce_payload(alert_type, payload)

    if alert_type == AlertType.HISTORICAL_LOW:
        return AlertPriority.URGENT

    if alert_type in (AlertType.STOCK_AVAILABLE, AlertType.BACK_IN_STOCK):
        return AlertPriority.HIGH

    if alert_type == AlertType.PRICE_DROP:
        drop = payload.percentage_drop if isinstance(payload, PriceDropPayload) else 0.0
        if drop >= URGENT_DROP_PERCENT:
            return AlertPriority.URGENT
        if drop >= HIGH_DROP_PERCENT:
            return AlertPriority.HIGH
        return AlertPriority.MEDIUM

    return AlertPriority.MEDIUM


def get_default_channels(alert_type: Union[AlertType, str]) -> List[NotificationChannel]:
    """Default delivery channels for an alert type."""
    alert_type = _parse_alert_type(alert_type)

    if alert_type in (AlertType.HISTORICAL_LOW, AlertType.PRICE_DROP):
        return [NotificationChannel.PUSH, NotificationChannel.EMAIL]

    return [NotificationChannel.PUSH]


def parse_alert_input(data: Union[AlertInput, Mapping[str, Any]]) -> AlertInput:
    """Validate caller input for a new alert."""
    if isinstance(data, AlertInput):
        return data

    if "type" in data:
        alert_type = _parse_alert_type(data["type"])
        payload = data.get("payload")
        # Payload mappings may omit their tag; it follows the alert type
        if isinstance(payload, Mapping) and "type" not in payload:
            data = {**data, "payload": {"type": alert_type.value, **payload}}

    try:
        return AlertInput.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, "Invalid alert input")


def create_alert(
    data: Union[AlertInput, Mapping[str, Any]],
    now: Optional[datetime] = None,
    max_delivery_attempts: int = DEFAULT_MAX_DELIVERY_ATTEMPTS,
) -> Alert:
    """
    Create a pending alert from caller input.

    Args:
        data: Alert input (model or mapping)
        now: Creation time, defaults to the current UTC time
        max_delivery_attempts: Attempt budget when the input has none

    Returns:
        New pending Alert

    Raises:
        ValidationError: If the input is malformed
    """
    alert_input = parse_alert_input(data)
    payload = alert_input.payload or default_payload(alert_input.type)

    try:
        alert = Alert(
            id=str(uuid4()),
            user_id=alert_input.user_id,
            product_id=alert_input.product_id,
            type=alert_input.type,
            priority=alert_input.priority
            or determine_priority(alert_input.type, payload),
            status=AlertStatus.PENDING,
            title=alert_input.title or render_default_title(alert_input.type, payload),
            message=alert_input.message
            or render_default_message(alert_input.type, payload),
            channels=alert_input.channels or get_default_channels(alert_input.type),
            payload=payload,
            delivery_attempts=0,
            max_delivery_attempts=alert_input.max_delivery_attempts
            or max_delivery_attempts,
            scheduled_at=alert_input.scheduled_at,
            created_at=now or datetime.now(UTC),
            expires_at=alert_input.expires_at,
            condition_id=alert_input.condition_id,
        )
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, "Invalid alert")

    logger.debug(
        "Alert created",
        alert_id=alert.id,
        user_id=alert.user_id,
        alert_type=alert.type.value,
        priority=alert.priority.value,
        channels=[ch.value for ch in alert.channels],
    )

    return alert


def _create_condition(
    adapter: TypeAdapter, data: Union[BaseModel, Mapping[str, Any]], now, kind: str
) -> AlertCondition:
    fields = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    fields.setdefault("is_active", True)
    fields.update(
        id=str(uuid4()),
        created_at=now or datetime.now(UTC),
        total_triggers=0,
    )

    try:
        return adapter.validate_python(fields)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, f"Invalid {kind} condition")


def create_price_condition(
    data: Union[BaseModel, Mapping[str, Any]], now: Optional[datetime] = None
) -> AlertCondition:
    """Create a ``below_target`` or ``percentage_drop`` condition."""
    return _create_condition(price_condition_adapter, data, now, "price")


def create_stock_condition(
    data: Union[BaseModel, Mapping[str, Any]], now: Optional[datetime] = None
) -> AlertCondition:
    """Create a ``back_in_stock`` or ``low_stock`` condition."""
    return _create_condition(stock_condition_adapter, data, now, "stock")
