"""User notification preferences.

Preferences are written by the user settings surface and validated there;
the delivery engine only reads them.
"""

from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import AlertPriority, AlertType, NotificationChannel

TIME_OF_DAY_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


class QuietHours(BaseModel):
    """Daily window during which alerts are held back."""

    enabled: bool = False
    start: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    end: Optional[str] = Field(None, pattern=TIME_OF_DAY_PATTERN)
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        """Timezone must be a known IANA zone."""
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @model_validator(mode="after")
    def require_bounds_when_enabled(self):
        if self.enabled and (self.start is None or self.end is None):
            raise ValueError("Enabled quiet hours need both start and end")
        return self


class TypePreference(BaseModel):
    """Per-alert-type overrides."""

    enabled: bool = True
    priority: Optional[AlertPriority] = None
    quiet_hours: QuietHours = Field(default_factory=QuietHours)


class NotificationPreferences(BaseModel):
    """Delivery preferences of one user."""

    user_id: str = Field(..., min_length=1)
    enabled_channels: List[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.PUSH]
    )
    type_preferences: Dict[AlertType, TypePreference] = Field(default_factory=dict)
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    max_notifications_per_day: int = Field(50, gt=0)
    max_notifications_per_hour: int = Field(10, gt=0)

    def for_type(self, alert_type: AlertType) -> Optional[TypePreference]:
        return self.type_preferences.get(AlertType(alert_type))
