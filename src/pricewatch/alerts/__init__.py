"""Alert creation, delivery policy, dispatch and reporting."""

from .channels import ChannelSender, ChannelSendResult
from .conditions import (
    AlertCondition,
    BackInStockCondition,
    BelowTargetCondition,
    LowStockCondition,
    PercentageDropCondition,
)
from .dispatcher import AlertDispatcher
from .engine import AlertEngine, DeliveryDecision, DeliveryRound
from .gate import can_send_alert, eligible_channels, is_in_quiet_hours
from .models import (
    Alert,
    AlertDeliveryResult,
    AlertInput,
    AlertPriority,
    AlertStatistics,
    AlertStatus,
    AlertType,
    DeliveryOutcome,
    DeliveryReport,
    NotificationChannel,
    StatisticsPeriod,
)
from .preferences import NotificationPreferences, QuietHours, TypePreference
from .prioritizer import (
    create_alert,
    create_price_condition,
    create_stock_condition,
    determine_priority,
    get_default_channels,
)
from .retry import (
    RetryPolicy,
    RetryScheduler,
    calculate_next_retry_time,
    should_retry,
)
from .statistics import create_delivery_report, create_statistics
from .stores import (
    InMemoryAlertStore,
    InMemoryConditionStore,
    InMemoryDeliveryLog,
    InMemoryPreferencesStore,
)

__all__ = [
    # Models
    "Alert",
    "AlertInput",
    "AlertType",
    "AlertPriority",
    "AlertStatus",
    "AlertDeliveryResult",
    "AlertStatistics",
    "DeliveryOutcome",
    "DeliveryReport",
    "NotificationChannel",
    "StatisticsPeriod",
    # Conditions
    "AlertCondition",
    "BelowTargetCondition",
    "PercentageDropCondition",
    "BackInStockCondition",
    "LowStockCondition",
    # Preferences
    "NotificationPreferences",
    "QuietHours",
    "TypePreference",
    # Policy
    "determine_priority",
    "get_default_channels",
    "create_alert",
    "create_price_condition",
    "create_stock_condition",
    "can_send_alert",
    "eligible_channels",
    "is_in_quiet_hours",
    "RetryPolicy",
    "RetryScheduler",
    "should_retry",
    "calculate_next_retry_time",
    "create_statistics",
    "create_delivery_report",
    # Delivery
    "ChannelSender",
    "ChannelSendResult",
    "AlertDispatcher",
    "AlertEngine",
    "DeliveryDecision",
    "DeliveryRound",
    # Stores
    "InMemoryAlertStore",
    "InMemoryDeliveryLog",
    "InMemoryConditionStore",
    "InMemoryPreferencesStore",
]
