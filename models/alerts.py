"""Dataclasses for alert rules, anomaly events, and trigger results."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.enums import AnomalyType, Severity, Channel


def _utcnow():
    return datetime.now(timezone.utc)


@dataclass
class RuleTriggers:
    anomaly_types: set = field(default_factory=set)
    severity_levels: set = field(default_factory=set)
    minimum_confidence: int = 70


@dataclass
class RuleNotifications:
    in_app: bool = True
    email: bool = False
    push: bool = False

    def enabled(self, channel: Channel) -> bool:
        return {
            Channel.IN_APP: self.in_app,
            Channel.EMAIL: self.email,
            Channel.PUSH: self.push,
        }[channel]

    def enabled_channels(self):
        return [c for c in Channel if self.enabled(c)]


@dataclass
class RuleFrequency:
    max_per_day: int = 3
    max_per_week: int = 10
    cooldown_hours: int = 6


@dataclass
class RuleStats:
    total_triggered: int = 0
    last_triggered: Optional[datetime] = None
    total_notifications_sent: int = 0


@dataclass
class AlertRule:
    id: Optional[int] = None
    user_id: str = ""
    pet_id: Optional[str] = None
    name: str = ""
    description: str = ""
    is_active: bool = True
    triggers: RuleTriggers = field(default_factory=RuleTriggers)
    notifications: RuleNotifications = field(default_factory=RuleNotifications)
    frequency: RuleFrequency = field(default_factory=RuleFrequency)
    stats: RuleStats = field(default_factory=RuleStats)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def applies_to_pet(self, pet_id) -> bool:
        return self.pet_id is None or self.pet_id == pet_id

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "petId": self.pet_id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
            "triggers": {
                "anomalyTypes": sorted(t.value for t in self.triggers.anomaly_types),
                "severityLevels": sorted(s.value for s in self.triggers.severity_levels),
                "minimumConfidence": self.triggers.minimum_confidence,
            },
            "notifications": {
                "inApp": self.notifications.in_app,
                "email": self.notifications.email,
                "push": self.notifications.push,
            },
            "frequency": {
                "maxPerDay": self.frequency.max_per_day,
                "maxPerWeek": self.frequency.max_per_week,
                "cooldownHours": self.frequency.cooldown_hours,
            },
            "stats": {
                "totalTriggered": self.stats.total_triggered,
                "lastTriggered": self.stats.last_triggered.isoformat() if self.stats.last_triggered else None,
                "totalNotificationsSent": self.stats.total_notifications_sent,
            },
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class AnomalyEvent:
    pet_id: str
    anomaly_type: AnomalyType
    severity: Severity
    confidence: int
    description: str = ""
    recommendations: tuple = ()
    trigger_data: dict = field(default_factory=dict, hash=False, compare=False)

    @classmethod
    def from_dict(cls, d, pet_id=None):
        return cls(
            pet_id=str(d.get("petId", pet_id)),
            anomaly_type=AnomalyType(d["anomalyType"]),
            severity=Severity(d["severity"]),
            confidence=int(d["confidence"]),
            description=d.get("description", ""),
            recommendations=tuple(d.get("recommendations", [])),
            trigger_data=dict(d.get("triggerData", {})),
        )

    def to_dict(self):
        return {
            "petId": self.pet_id,
            "anomalyType": self.anomaly_type.value,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "description": self.description,
            "recommendations": list(self.recommendations),
            "triggerData": self.trigger_data,
        }


@dataclass
class TriggerRecord:
    rule_id: int
    pet_id: Optional[str]
    anomaly_type: AnomalyType
    severity: Severity
    triggered_at: datetime = field(default_factory=_utcnow)


@dataclass
class AlertTriggerResult:
    rule_id: int
    rule_name: str
    anomaly: AnomalyEvent
    pet_id: str
    user_id: str
    notifications_sent: dict = field(default_factory=dict)
    pet_name: Optional[str] = None
    triggered_at: datetime = field(default_factory=_utcnow)

    @property
    def sent_count(self):
        return sum(1 for ok in self.notifications_sent.values() if ok)

    def to_dict(self):
        return {
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "anomaly": self.anomaly.to_dict(),
            "petId": self.pet_id,
            "petName": self.pet_name,
            "userId": self.user_id,
            "notificationsSent": {c.value: ok for c, ok in self.notifications_sent.items()},
            "triggeredAt": self.triggered_at.isoformat(),
        }


@dataclass
class BatchRunResult:
    total_users_checked: int = 0
    total_alerts_triggered: int = 0
    errors: list = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "totalUsersChecked": self.total_users_checked,
            "totalAlertsTriggered": self.total_alerts_triggered,
            "errors": list(self.errors),
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }
