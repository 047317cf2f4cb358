"""Rule matching and anomaly classification."""
from models.enums import AnomalyType, Severity, NotificationCategory, NotificationPriority

CATEGORY_MAP = {
    AnomalyType.HEALTH_DECLINE: NotificationCategory.HEALTH,
    AnomalyType.FREQUENCY: NotificationCategory.FREQUENCY,
    AnomalyType.PATTERN_CHANGE: NotificationCategory.PATTERN,
    AnomalyType.CONSISTENCY_CHANGE: NotificationCategory.PATTERN,
}

PRIORITY_MAP = {
    Severity.LOW: NotificationPriority.LOW,
    Severity.MEDIUM: NotificationPriority.NORMAL,
    Severity.HIGH: NotificationPriority.HIGH,
}

TITLE_MAP = {
    AnomalyType.FREQUENCY: "Abnormal bowel frequency",
    AnomalyType.HEALTH_DECLINE: "Declining health status",
    AnomalyType.PATTERN_CHANGE: "Bowel pattern change",
    AnomalyType.CONSISTENCY_CHANGE: "Stool consistency change",
}


class RuleMatcher:
    """Stateless predicate over (rule, anomaly) plus classification maps."""

    @staticmethod
    def matches(rule, anomaly) -> bool:
        triggers = rule.triggers
        if anomaly.anomaly_type not in triggers.anomaly_types:
            return False
        if anomaly.severity not in triggers.severity_levels:
            return False
        return anomaly.confidence >= triggers.minimum_confidence

    @staticmethod
    def category(anomaly_type) -> NotificationCategory:
        return CATEGORY_MAP.get(anomaly_type, NotificationCategory.GENERAL)

    @staticmethod
    def priority(severity) -> NotificationPriority:
        return PRIORITY_MAP.get(severity, NotificationPriority.NORMAL)

    @staticmethod
    def title(anomaly_type) -> str:
        return TITLE_MAP.get(anomaly_type, "Health anomaly")
