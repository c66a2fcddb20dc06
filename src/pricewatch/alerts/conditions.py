"""Watch conditions that fire alerts.

Each condition subtype is its own model so that subtype-specific parameters
(target price, percentage, stock threshold) are required exactly where they
apply.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from ..clock import ensure_utc


class ConditionBase(BaseModel):
    """Fields shared by every watch condition."""

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    is_active: bool = True
    total_triggers: int = Field(0, ge=0)
    created_at: datetime
    triggered_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("created_at", "triggered_at", "expires_at")
    @classmethod
    def normalize_utc(cls, v):
        return ensure_utc(v) if v is not None else v

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_live(self, now: datetime) -> bool:
        """Active and not past its expiry."""
        return self.is_active and not self.is_expired(now)


class BelowTargetCondition(ConditionBase):
    """Fire when the price falls below a target."""

    subtype: Literal["below_target"] = "below_target"
    target_price: float = Field(..., gt=0)


class PercentageDropCondition(ConditionBase):
    """Fire when the price drops by at least a percentage."""

    subtype: Literal["percentage_drop"] = "percentage_drop"
    percentage: float = Field(..., gt=0, le=100)


class BackInStockCondition(ConditionBase):
    """Fire when a sold-out product is restocked."""

    subtype: Literal["back_in_stock"] = "back_in_stock"


class LowStockCondition(ConditionBase):
    """Fire when stock falls to or below a threshold."""

    subtype: Literal["low_stock"] = "low_stock"
    threshold: int = Field(..., gt=0)


PriceCondition = Annotated[
    Union[BelowTargetCondition, PercentageDropCondition],
    Field(discriminator="subtype"),
]

StockCondition = Annotated[
    Union[BackInStockCondition, LowStockCondition],
    Field(discriminator="subtype"),
]

AlertCondition = Annotated[
    Union[
        BelowTargetCondition,
        PercentageDropCondition,
        BackInStockCondition,
        LowStockCondition,
    ],
    Field(discriminator="subtype"),
]

price_condition_adapter = TypeAdapter(PriceCondition)
stock_condition_adapter = TypeAdapter(StockCondition)
condition_adapter = TypeAdapter(AlertCondition)
