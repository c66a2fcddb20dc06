"""SQLAlchemy ORM models for alerts, delivery results and conditions."""

import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from .database import Base


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class AlertRecord(Base):
    """Persisted alert."""

    __tablename__ = "alerts"

    id = Column(String(36), primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    product_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    priority = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    channels = Column(JSON, nullable=False)
    payload = Column(JSON, nullable=False)
    delivery_attempts = Column(Integer, default=0, nullable=False)
    max_delivery_attempts = Column(Integer, default=3, nullable=False)
    scheduled_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, index=True)
    delivered_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    condition_id = Column(String(36), nullable=True, index=True)

    deliveries = relationship(
        "DeliveryResultRecord",
        back_populates="alert",
        order_by="DeliveryResultRecord.id",
    )

    def __repr__(self):
        return f"<AlertRecord(id='{self.id}', type='{self.type}', status='{self.status}')>"


class DeliveryResultRecord(Base):
    """One channel send; rows are only ever inserted."""

    __tablename__ = "alert_delivery_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(String(36), ForeignKey("alerts.id"), nullable=False, index=True)
    channel = Column(String, nullable=False)
    outcome = Column(String, nullable=False)
    message_id = Column(String, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    response_time_ms = Column(Float, nullable=True)
    error = Column(Text, nullable=True)
    recorded_at = Column(DateTime, default=_utcnow, nullable=False)

    alert = relationship("AlertRecord", back_populates="deliveries")

    def __repr__(self):
        return (
            f"<DeliveryResultRecord(alert_id='{self.alert_id}', "
            f"channel='{self.channel}', outcome='{self.outcome}')>"
        )


class AlertConditionRecord(Base):
    """Watch condition; subtype-specific parameters are nullable columns."""

    __tablename__ = "alert_conditions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    product_id = Column(String, nullable=False, index=True)
    subtype = Column(String, nullable=False)
    target_price = Column(Float, nullable=True)
    percentage = Column(Float, nullable=True)
    threshold = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    total_triggers = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, nullable=False)
    triggered_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<AlertConditionRecord(id='{self.id}', subtype='{self.subtype}')>"
