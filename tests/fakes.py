"""In-memory stand-ins for the detector, senders, trigger log, and clock."""
from datetime import datetime, timedelta, timezone

from models.alerts import (
    AlertRule, AnomalyEvent, RuleTriggers, RuleNotifications, RuleFrequency,
)
from models.enums import AnomalyType, Severity

T0 = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)


def make_rule(user_id="u1", pet_id="p1", name="Frequency watch", types=("frequency",),
              severities=("high",), confidence=80, in_app=True, email=False, push=False,
              max_per_day=1, max_per_week=5, cooldown_hours=6, **kwargs):
    return AlertRule(
        user_id=user_id,
        pet_id=pet_id,
        name=name,
        triggers=RuleTriggers(
            anomaly_types={AnomalyType(t) for t in types},
            severity_levels={Severity(s) for s in severities},
            minimum_confidence=confidence,
        ),
        notifications=RuleNotifications(in_app=in_app, email=email, push=push),
        frequency=RuleFrequency(max_per_day=max_per_day, max_per_week=max_per_week,
                                cooldown_hours=cooldown_hours),
        **kwargs,
    )


def make_anomaly(pet_id="p1", anomaly_type="frequency", severity="high", confidence=85,
                 description="Bowel movements well above baseline", recommendations=()):
    return AnomalyEvent(
        pet_id=pet_id,
        anomaly_type=AnomalyType(anomaly_type),
        severity=Severity(severity),
        confidence=confidence,
        description=description,
        recommendations=tuple(recommendations),
    )


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeDetector:
    def __init__(self, anomalies=None):
        self.anomalies = anomalies or {}
        self.errors = {}
        self.calls = []

    def detect_anomalies(self, pet_id):
        self.calls.append(pet_id)
        if pet_id in self.errors:
            raise self.errors[pet_id]
        return list(self.anomalies.get(pet_id, []))


class FakeEmailSender:
    def __init__(self, result=True):
        self.result = result
        self.sent = []

    def send_email(self, to, subject, body):
        self.sent.append((to, subject, body))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakePushSender:
    def __init__(self, result=True):
        self.result = result
        self.sent = []

    def send_push(self, device_tokens, payload):
        self.sent.append((list(device_tokens), payload))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class InMemoryTriggerLog:
    def __init__(self):
        self.records = []

    def record_trigger(self, record):
        self.records.append(record)

    def count_triggers(self, rule_id, since, until):
        return sum(1 for r in self.records
                   if r.rule_id == rule_id and since <= r.triggered_at < until)
