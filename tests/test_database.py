"""Tests for SQLite persistence of rules, triggers, notifications and contacts."""
from datetime import timedelta

from models.alerts import TriggerRecord
from models.enums import (
    AnomalyType, Severity, Channel, DeliveryStatus, NotificationCategory, NotificationPriority,
    NotificationStatus,
)
from models.notifications import Notification
from fakes import make_rule, T0


def test_save_and_get_rule_roundtrip(temp_db):
    rule = make_rule(types=["frequency", "pattern_change"], severities=["medium", "high"],
                     confidence=65, email=True, max_per_day=2, max_per_week=7, cooldown_hours=12)
    rule.stats.last_triggered = T0
    temp_db.save_rule(rule)
    assert rule.id is not None

    loaded = temp_db.get_rule(rule.id)
    assert loaded.triggers.anomaly_types == {AnomalyType.FREQUENCY, AnomalyType.PATTERN_CHANGE}
    assert loaded.triggers.severity_levels == {Severity.MEDIUM, Severity.HIGH}
    assert loaded.triggers.minimum_confidence == 65
    assert loaded.notifications.email is True
    assert loaded.frequency.cooldown_hours == 12
    assert loaded.stats.last_triggered == T0


def test_update_rule(temp_db):
    rule = temp_db.save_rule(make_rule())
    rule.name = "Renamed"
    rule.stats.total_triggered = 4
    temp_db.save_rule(rule)
    loaded = temp_db.get_rule(rule.id)
    assert loaded.name == "Renamed"
    assert loaded.stats.total_triggered == 4


def test_delete_rule(temp_db):
    rule = temp_db.save_rule(make_rule())
    assert temp_db.delete_rule(rule.id) is True
    assert temp_db.get_rule(rule.id) is None
    assert temp_db.delete_rule(rule.id) is False


def test_find_rules_for_user_filters(temp_db):
    temp_db.save_rule(make_rule(name="pet1", pet_id="p1"))
    temp_db.save_rule(make_rule(name="all", pet_id=None))
    temp_db.save_rule(make_rule(name="pet2", pet_id="p2"))
    temp_db.save_rule(make_rule(name="off", pet_id="p1", is_active=False))
    temp_db.save_rule(make_rule(name="other user", user_id="u2", pet_id="p1"))

    names = {r.name for r in temp_db.find_active_rules_for_user("u1", "p1")}
    assert names == {"pet1", "all"}
    assert len(temp_db.find_rules_for_user("u1", include_inactive=True)) == 4
    assert len(temp_db.find_all_active_rules()) == 4


def test_count_triggers_window_is_half_open(temp_db):
    rule = temp_db.save_rule(make_rule())
    for hours in (0, 5, 24):
        temp_db.record_trigger(TriggerRecord(rule.id, "p1", AnomalyType.FREQUENCY, Severity.HIGH,
                                             T0 - timedelta(hours=hours)))
    assert temp_db.count_triggers(rule.id, T0 - timedelta(hours=24), T0) == 2
    assert temp_db.count_triggers(rule.id, T0 - timedelta(hours=24), T0 + timedelta(seconds=1)) == 3


def test_recent_triggers_join_rule_name(temp_db):
    rule = temp_db.save_rule(make_rule(name="Frequency watch"))
    temp_db.record_trigger(TriggerRecord(rule.id, "p1", AnomalyType.FREQUENCY, Severity.HIGH, T0))
    recent = temp_db.get_recent_triggers("u1", T0 - timedelta(days=1))
    assert recent[0]["rule_name"] == "Frequency watch"
    assert recent[0]["anomaly_type"] == "frequency"
    assert temp_db.get_recent_triggers("u2", T0 - timedelta(days=1)) == []


def test_notification_roundtrip(temp_db):
    n = Notification(user_id="u1", title="T", message="M", pet_id="p1", created_at=T0,
                     data={"alertRuleId": 1})
    n.channel(Channel.IN_APP).mark_sent(T0)
    temp_db.create_notification(n)
    assert n.id is not None

    loaded = temp_db.get_notifications("u1")[0]
    assert loaded.channel(Channel.IN_APP).sent is True
    assert loaded.channel(Channel.EMAIL).delivery_status == DeliveryStatus.PENDING
    assert loaded.expires_at == T0 + timedelta(days=30)
    assert loaded.status == NotificationStatus.UNREAD
    assert temp_db.unread_count("u1") == 1


def test_expired_notifications_hidden(temp_db):
    old = Notification(user_id="u1", title="old", message="", created_at=T0 - timedelta(days=31))
    temp_db.create_notification(old)
    assert temp_db.get_notifications("u1") == []


def test_contacts_and_pets(temp_db):
    assert temp_db.get_contact("u1") == {"email": None, "device_tokens": []}
    temp_db.upsert_user("u1", email="a@test.com", device_tokens=["t1"])
    temp_db.upsert_user("u1", email="b@test.com", device_tokens=["t1", "t2"])
    assert temp_db.get_contact("u1") == {"email": "b@test.com", "device_tokens": ["t1", "t2"]}

    temp_db.add_pet("p1", "u1", "Biscuit")
    assert temp_db.get_pet_name("p1") == "Biscuit"
    assert temp_db.get_pet_name("nope") is None


def test_partial_contact_update_keeps_other_fields(temp_db):
    temp_db.upsert_user("u1", email="owner@test.com", device_tokens=["t1"])
    temp_db.upsert_user("u1", device_tokens=["t2"])
    assert temp_db.get_contact("u1") == {"email": "owner@test.com", "device_tokens": ["t2"]}
    temp_db.upsert_user("u1", email="new@test.com")
    assert temp_db.get_contact("u1") == {"email": "new@test.com", "device_tokens": ["t2"]}

    temp_db.upsert_user("u2", email="solo@test.com")
    assert temp_db.get_contact("u2") == {"email": "solo@test.com", "device_tokens": []}


def test_database_satisfies_storage_protocols(temp_db):
    from alerts.rate_limiter import TriggerLog
    from alerts.repositories import RuleRepository, NotificationRepository, ContactDirectory
    assert isinstance(temp_db, RuleRepository)
    assert isinstance(temp_db, NotificationRepository)
    assert isinstance(temp_db, ContactDirectory)
    assert isinstance(temp_db, TriggerLog)


def test_transports_satisfy_sender_protocols():
    from alerts.detector import HTTPAnomalyDetector
    from alerts.repositories import AnomalyDetector, EmailChannelSender, PushChannelSender
    from notifications.email_sender import EmailSender
    from notifications.push_sender import PushSender
    assert isinstance(HTTPAnomalyDetector({"detector": {"base_url": "http://d.test"}}), AnomalyDetector)
    assert isinstance(EmailSender({}), EmailChannelSender)
    assert isinstance(PushSender({}), PushChannelSender)


def _email_record(db, status=DeliveryStatus.FAILED, attempts=1, address="owner@test.com", **kwargs):
    n = Notification(user_id="u1", title="Email alert", message="M", created_at=T0, **kwargs)
    state = n.channel(Channel.EMAIL)
    state.email_address = address
    state.delivery_status = status
    state.attempts = attempts
    return db.create_notification(n)


def test_delete_expired_notifications(temp_db):
    temp_db.create_notification(Notification(user_id="u1", title="old", message="",
                                             created_at=T0 - timedelta(days=31)))
    fresh = temp_db.create_notification(Notification(user_id="u1", title="fresh", message="",
                                                     created_at=T0))
    assert temp_db.delete_expired_notifications(T0) == 1
    assert temp_db.delete_expired_notifications(T0) == 0
    assert [n.id for n in temp_db.get_notifications("u1")] == [fresh.id]


def test_find_undelivered_only_addressed_channels(temp_db):
    failed = _email_record(temp_db)
    # in-app record: email state is pending but was never addressed
    in_app = Notification(user_id="u1", title="In-app", message="M", created_at=T0)
    in_app.channel(Channel.IN_APP).mark_sent(T0)
    temp_db.create_notification(in_app)
    sent = _email_record(temp_db, status=DeliveryStatus.SENT)

    found = temp_db.find_undelivered_notifications(now=T0)
    assert [n.id for n in found] == [failed.id]
    assert sent.id not in [n.id for n in found]
    assert found[0].channel(Channel.EMAIL).attempts == 1


def test_find_undelivered_respects_attempt_cap_and_expiry(temp_db):
    _email_record(temp_db, attempts=3)
    _email_record(temp_db, expires_at=T0 - timedelta(minutes=1))
    assert temp_db.find_undelivered_notifications(max_attempts=3, now=T0) == []
    assert len(temp_db.find_undelivered_notifications(max_attempts=4, now=T0)) == 1


def test_update_notification_channels(temp_db):
    n = _email_record(temp_db)
    n.channel(Channel.EMAIL).mark_sent(T0, DeliveryStatus.SENT)
    temp_db.update_notification_channels(n)
    state = temp_db.get_notifications("u1")[0].channel(Channel.EMAIL)
    assert state.sent is True
    assert state.delivery_status == DeliveryStatus.SENT


def test_notification_statistics(temp_db):
    for category, priority in ((NotificationCategory.FREQUENCY, NotificationPriority.HIGH),
                               (NotificationCategory.FREQUENCY, NotificationPriority.NORMAL),
                               (NotificationCategory.HEALTH, NotificationPriority.HIGH)):
        temp_db.create_notification(Notification(user_id="u1", title="t", message="m",
                                                 category=category, priority=priority,
                                                 created_at=T0))
    temp_db.create_notification(Notification(user_id="u1", title="t", message="m",
                                             status=NotificationStatus.READ,
                                             created_at=T0 - timedelta(days=1)))
    temp_db.create_notification(Notification(user_id="u1", title="ancient", message="m",
                                             created_at=T0 - timedelta(days=60)))
    temp_db.create_notification(Notification(user_id="u2", title="other", message="m",
                                             created_at=T0))

    s = temp_db.get_notification_statistics("u1", days=30, now=T0)
    assert s["totalNotifications"] == 4
    assert s["unreadCount"] == 3
    assert s["readCount"] == 1
    assert s["archivedCount"] == 0
    assert s["byCategory"] == {"frequency": 2, "general": 1, "health": 1}
    assert s["byPriority"] == {"high": 2, "normal": 2}
    assert s["byType"] == {"alert": 4}
    assert s["recentActivity"] == [
        {"date": (T0 - timedelta(days=1)).date().isoformat(), "count": 1},
        {"date": T0.date().isoformat(), "count": 3},
    ]
