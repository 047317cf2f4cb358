"""Data models."""
from models.enums import (
    AnomalyType, Severity, Channel, NotificationType, NotificationCategory,
    NotificationPriority, NotificationStatus, DeliveryStatus,
)
from models.alerts import (
    AlertRule, RuleTriggers, RuleNotifications, RuleFrequency, RuleStats,
    AnomalyEvent, TriggerRecord, AlertTriggerResult, BatchRunResult,
)
from models.notifications import Notification, ChannelState, MaintenanceRunResult
