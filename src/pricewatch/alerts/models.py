"""Data models for alerts, delivery results and statistics."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..clock import ensure_utc


class AlertType(str, Enum):
    """Kinds of user-facing alerts."""

    PRICE_DROP = "price_drop"
    HISTORICAL_LOW = "historical_low"
    STOCK_AVAILABLE = "stock_available"
    BACK_IN_STOCK = "back_in_stock"
    PRICE_TARGET = "price_target"


class AlertPriority(str, Enum):
    """Alert priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class AlertStatus(str, Enum):
    """Alert lifecycle states."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {AlertStatus.DELIVERED, AlertStatus.FAILED, AlertStatus.EXPIRED}
)


class NotificationChannel(str, Enum):
    """Available notification channels."""

    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class DeliveryOutcome(str, Enum):
    """Outcome of one channel send."""

    SUCCESS = "success"
    FAILED = "failed"


class StatisticsPeriod(str, Enum):
    """Reporting periods for delivery statistics."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PayloadBase(BaseModel):
    """Payload fields accept snake_case or camelCase; unknown keys are rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )


class PriceDropPayload(PayloadBase):
    """Price fell relative to the last observed price."""

    type: Literal["price_drop"] = "price_drop"
    previous_price: Optional[float] = Field(None, gt=0)
    current_price: Optional[float] = Field(None, gt=0)
    percentage_drop: float = Field(0.0, ge=0, le=100)


class HistoricalLowPayload(PayloadBase):
    """Price hit its lowest point over a lookback window."""

    type: Literal["historical_low"] = "historical_low"
    current_price: Optional[float] = Field(None, gt=0)
    lookback_days: int = Field(90, ge=1)


class StockAvailablePayload(PayloadBase):
    """Product became available for the first time."""

    type: Literal["stock_available"] = "stock_available"
    stock_level: Optional[int] = Field(None, ge=0)


class BackInStockPayload(PayloadBase):
    """Product returned to stock after selling out."""

    type: Literal["back_in_stock"] = "back_in_stock"
    stock_level: Optional[int] = Field(None, ge=0)


class PriceTargetPayload(PayloadBase):
    """Price reached the user's target."""

    type: Literal["price_target"] = "price_target"
    target_price: Optional[float] = Field(None, gt=0)
    current_price: Optional[float] = Field(None, gt=0)


AlertPayload = Annotated[
    Union[
        PriceDropPayload,
        HistoricalLowPayload,
        StockAvailablePayload,
        BackInStockPayload,
        PriceTargetPayload,
    ],
    Field(discriminator="type"),
]

_PAYLOAD_TYPES = {
    AlertType.PRICE_DROP: PriceDropPayload,
    AlertType.HISTORICAL_LOW: HistoricalLowPayload,
    AlertType.STOCK_AVAILABLE: StockAvailablePayload,
    AlertType.BACK_IN_STOCK: BackInStockPayload,
    AlertType.PRICE_TARGET: PriceTargetPayload,
}


def default_payload(alert_type: AlertType) -> AlertPayload:
    """Build an empty payload variant for an alert type."""
    return _PAYLOAD_TYPES[AlertType(alert_type)]()


def _check_payload_type(alert_type: AlertType, payload) -> None:
    if payload is not None and payload.type != AlertType(alert_type).value:
        raise ValueError(
            f"payload of type '{payload.type}' does not match alert type "
            f"'{AlertType(alert_type).value}'"
        )


def _dedupe_channels(channels):
    if channels is None:
        return channels
    return list(dict.fromkeys(channels))


class AlertInput(BaseModel):
    """Caller-supplied fields for a new alert."""

    user_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    type: AlertType
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    message: Optional[str] = Field(None, min_length=1, max_length=1000)
    payload: Optional[AlertPayload] = None
    priority: Optional[AlertPriority] = None
    channels: Optional[List[NotificationChannel]] = Field(None, min_length=1)
    max_delivery_attempts: Optional[int] = Field(None, ge=1)
    scheduled_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    condition_id: Optional[str] = None

    dedupe_channels = field_validator("channels")(_dedupe_channels)

    @field_validator("scheduled_at", "expires_at")
    @classmethod
    def normalize_utc(cls, v):
        return ensure_utc(v) if v is not None else v

    @model_validator(mode="after")
    def payload_matches_type(self):
        _check_payload_type(self.type, self.payload)
        return self


class Alert(BaseModel):
    """A user-facing notification instance generated from a fired condition."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    type: AlertType
    priority: AlertPriority = AlertPriority.MEDIUM
    status: AlertStatus = AlertStatus.PENDING
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    channels: List[NotificationChannel] = Field(..., min_length=1)
    payload: AlertPayload
    delivery_attempts: int = Field(0, ge=0)
    max_delivery_attempts: int = Field(3, ge=1)
    scheduled_at: Optional[datetime] = None
    created_at: datetime
    delivered_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    condition_id: Optional[str] = None

    dedupe_channels = field_validator("channels")(_dedupe_channels)

    @field_validator("created_at", "scheduled_at", "delivered_at", "expires_at")
    @classmethod
    def normalize_utc(cls, v):
        return ensure_utc(v) if v is not None else v

    @model_validator(mode="after")
    def check_invariants(self):
        _check_payload_type(self.type, self.payload)
        if self.delivery_attempts > self.max_delivery_attempts:
            raise ValueError(
                "delivery_attempts cannot exceed max_delivery_attempts "
                f"({self.delivery_attempts} > {self.max_delivery_attempts})"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_due(self, now: datetime) -> bool:
        return self.scheduled_at is None or self.scheduled_at <= now


class AlertDeliveryResult(BaseModel):
    """Append-only record of one channel send."""

    model_config = ConfigDict(frozen=True)

    alert_id: str
    channel: NotificationChannel
    outcome: DeliveryOutcome
    message_id: Optional[str] = None
    delivered_at: Optional[datetime] = None
    response_time_ms: Optional[float] = Field(None, ge=0)
    error: Optional[str] = None

    @field_validator("delivered_at")
    @classmethod
    def normalize_utc(cls, v):
        return ensure_utc(v) if v is not None else v

    @property
    def succeeded(self) -> bool:
        return self.outcome == DeliveryOutcome.SUCCESS


class DeliveryCounts(BaseModel):
    """Sent/delivered/failed triple."""

    sent: int = Field(0, ge=0)
    delivered: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)


class AlertStatistics(BaseModel):
    """Delivery statistics for one user over one period."""

    user_id: str
    period: StatisticsPeriod
    total_sent: int = Field(..., ge=0)
    total_delivered: int = Field(..., ge=0)
    total_failed: int = Field(..., ge=0)
    by_type: Dict[str, DeliveryCounts] = Field(default_factory=dict)
    by_channel: Dict[str, DeliveryCounts] = Field(default_factory=dict)
    average_delivery_time: float = Field(..., ge=0)
    delivery_rate: float = Field(..., ge=0, le=1)
    start_date: datetime
    end_date: datetime
    generated_at: datetime


class DeliveryReport(BaseModel):
    """Audit summary of every channel send made for one alert."""

    alert: Alert
    deliveries: List[AlertDeliveryResult] = Field(default_factory=list)
    total_deliveries: int = Field(0, ge=0)
    successful_deliveries: int = Field(0, ge=0)
    failed_deliveries: int = Field(0, ge=0)
    average_delivery_time: float = Field(0.0, ge=0)
