"""Enums for anomalies, channels, and notification attributes."""
from enum import Enum


class AnomalyType(str, Enum):
    FREQUENCY = "frequency"
    HEALTH_DECLINE = "health_decline"
    PATTERN_CHANGE = "pattern_change"
    CONSISTENCY_CHANGE = "consistency_change"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Channel(str, Enum):
    IN_APP = "inApp"
    EMAIL = "email"
    PUSH = "push"


class NotificationType(str, Enum):
    ALERT = "alert"
    SYSTEM = "system"
    COMMUNITY = "community"
    REMINDER = "reminder"


class NotificationCategory(str, Enum):
    HEALTH = "health"
    FREQUENCY = "frequency"
    PATTERN = "pattern"
    EMERGENCY = "emergency"
    GENERAL = "general"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    ARCHIVED = "archived"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
