"""SQLite database for alert rules, the trigger log, notifications, and contacts."""
import json
import sqlite3
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

from models.alerts import (
    AlertRule, RuleTriggers, RuleNotifications, RuleFrequency, RuleStats,
)
from models.enums import (
    AnomalyType, Severity, Channel, NotificationCategory, NotificationPriority,
    NotificationStatus, NotificationType,
)
from models.notifications import Notification, ChannelState

logger = logging.getLogger("petalerts.db")


def _ts(dt):
    """Normalize a datetime to a sortable UTC ISO string."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value):
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class Database:
    def __init__(self, db_path="data/petalerts.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS alert_rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                pet_id TEXT,
                name TEXT NOT NULL,
                description TEXT DEFAULT '',
                is_active INTEGER DEFAULT 1,
                anomaly_types TEXT NOT NULL,
                severity_levels TEXT NOT NULL,
                minimum_confidence INTEGER NOT NULL DEFAULT 70,
                notify_in_app INTEGER DEFAULT 1,
                notify_email INTEGER DEFAULT 0,
                notify_push INTEGER DEFAULT 0,
                max_per_day INTEGER NOT NULL DEFAULT 3,
                max_per_week INTEGER NOT NULL DEFAULT 10,
                cooldown_hours INTEGER NOT NULL DEFAULT 6,
                total_triggered INTEGER DEFAULT 0,
                last_triggered TEXT,
                total_notifications_sent INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_rules_user_active
                ON alert_rules(user_id, is_active);
            CREATE INDEX IF NOT EXISTS idx_rules_pet_active
                ON alert_rules(pet_id, is_active);

            CREATE TABLE IF NOT EXISTS trigger_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rule_id INTEGER NOT NULL,
                pet_id TEXT,
                anomaly_type TEXT,
                severity TEXT,
                triggered_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_trigger_rule_time
                ON trigger_log(rule_id, triggered_at);

            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                pet_id TEXT,
                type TEXT NOT NULL,
                category TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                data TEXT,
                status TEXT NOT NULL DEFAULT 'unread',
                priority TEXT NOT NULL DEFAULT 'normal',
                channels TEXT NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_notifications_user_status
                ON notifications(user_id, status, created_at);

            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                email TEXT,
                device_tokens TEXT DEFAULT '[]'
            );

            CREATE TABLE IF NOT EXISTS pets (
                pet_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL
            );
        """)
        self.conn.commit()

    # --- Alert Rules ---

    def _row_to_rule(self, row):
        return AlertRule(
            id=row["id"],
            user_id=row["user_id"],
            pet_id=row["pet_id"],
            name=row["name"],
            description=row["description"] or "",
            is_active=bool(row["is_active"]),
            triggers=RuleTriggers(
                anomaly_types={AnomalyType(t) for t in json.loads(row["anomaly_types"])},
                severity_levels={Severity(s) for s in json.loads(row["severity_levels"])},
                minimum_confidence=row["minimum_confidence"],
            ),
            notifications=RuleNotifications(
                in_app=bool(row["notify_in_app"]),
                email=bool(row["notify_email"]),
                push=bool(row["notify_push"]),
            ),
            frequency=RuleFrequency(
                max_per_day=row["max_per_day"],
                max_per_week=row["max_per_week"],
                cooldown_hours=row["cooldown_hours"],
            ),
            stats=RuleStats(
                total_triggered=row["total_triggered"],
                last_triggered=_parse_ts(row["last_triggered"]),
                total_notifications_sent=row["total_notifications_sent"],
            ),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def save_rule(self, rule):
        """Insert a new rule or update an existing one. Returns the rule with its id set."""
        rule.updated_at = datetime.now(timezone.utc)
        values = (
            rule.user_id, rule.pet_id, rule.name, rule.description, int(rule.is_active),
            json.dumps(sorted(t.value for t in rule.triggers.anomaly_types)),
            json.dumps(sorted(s.value for s in rule.triggers.severity_levels)),
            rule.triggers.minimum_confidence,
            int(rule.notifications.in_app), int(rule.notifications.email), int(rule.notifications.push),
            rule.frequency.max_per_day, rule.frequency.max_per_week, rule.frequency.cooldown_hours,
            rule.stats.total_triggered, _ts(rule.stats.last_triggered),
            rule.stats.total_notifications_sent, _ts(rule.updated_at),
        )
        with self._lock:
            if rule.id is None:
                cur = self.conn.execute("""
                    INSERT INTO alert_rules
                    (user_id, pet_id, name, description, is_active, anomaly_types,
                     severity_levels, minimum_confidence, notify_in_app, notify_email,
                     notify_push, max_per_day, max_per_week, cooldown_hours,
                     total_triggered, last_triggered, total_notifications_sent,
                     updated_at, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, values + (_ts(rule.created_at),))
                rule.id = cur.lastrowid
            else:
                self.conn.execute("""
                    UPDATE alert_rules SET
                        user_id = ?, pet_id = ?, name = ?, description = ?, is_active = ?,
                        anomaly_types = ?, severity_levels = ?, minimum_confidence = ?,
                        notify_in_app = ?, notify_email = ?, notify_push = ?,
                        max_per_day = ?, max_per_week = ?, cooldown_hours = ?,
                        total_triggered = ?, last_triggered = ?,
                        total_notifications_sent = ?, updated_at = ?
                    WHERE id = ?
                """, values + (rule.id,))
            self.conn.commit()
        logger.debug(f"Saved rule {rule.id} ({rule.name})")
        return rule

    def get_rule(self, rule_id):
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM alert_rules WHERE id = ?", (rule_id,)
            ).fetchone()
        return self._row_to_rule(row) if row else None

    def delete_rule(self, rule_id):
        with self._lock:
            cur = self.conn.execute("DELETE FROM alert_rules WHERE id = ?", (rule_id,))
            self.conn.commit()
        return cur.rowcount > 0

    def find_rules_for_user(self, user_id, pet_id=None, include_inactive=False):
        """Rules owned by user_id; with pet_id, only rules for that pet or for all pets."""
        query = "SELECT * FROM alert_rules WHERE user_id = ?"
        params = [user_id]
        if not include_inactive:
            query += " AND is_active = 1"
        if pet_id is not None:
            query += " AND (pet_id = ? OR pet_id IS NULL)"
            params.append(pet_id)
        query += " ORDER BY created_at DESC, id DESC"
        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_rule(r) for r in rows]

    def find_active_rules_for_user(self, user_id, pet_id=None):
        return self.find_rules_for_user(user_id, pet_id, include_inactive=False)

    def find_all_active_rules(self):
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM alert_rules WHERE is_active = 1 ORDER BY user_id, id"
            ).fetchall()
        return [self._row_to_rule(r) for r in rows]

    # --- Trigger Log ---

    def record_trigger(self, record):
        with self._lock:
            self.conn.execute("""
                INSERT INTO trigger_log (rule_id, pet_id, anomaly_type, severity, triggered_at)
                VALUES (?, ?, ?, ?, ?)
            """, (
                record.rule_id, record.pet_id,
                record.anomaly_type.value if record.anomaly_type else None,
                record.severity.value if record.severity else None,
                _ts(record.triggered_at),
            ))
            self.conn.commit()

    def count_triggers(self, rule_id, since, until):
        """Count triggers for rule_id with since <= triggered_at < until."""
        with self._lock:
            row = self.conn.execute("""
                SELECT COUNT(*) as cnt FROM trigger_log
                WHERE rule_id = ? AND triggered_at >= ? AND triggered_at < ?
            """, (rule_id, _ts(since), _ts(until))).fetchone()
        return row["cnt"]

    def get_recent_triggers(self, user_id, since, limit=10):
        with self._lock:
            rows = self.conn.execute("""
                SELECT r.name as rule_name, t.rule_id, t.pet_id, t.anomaly_type,
                       t.severity, t.triggered_at
                FROM trigger_log t
                JOIN alert_rules r ON r.id = t.rule_id
                WHERE r.user_id = ? AND t.triggered_at >= ?
                ORDER BY t.triggered_at DESC
                LIMIT ?
            """, (user_id, _ts(since), limit)).fetchall()
        return [dict(r) for r in rows]

    # --- Notifications ---

    def create_notification(self, notification):
        with self._lock:
            cur = self.conn.execute("""
                INSERT INTO notifications
                (user_id, pet_id, type, category, title, message, data, status,
                 priority, channels, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                notification.user_id, notification.pet_id,
                notification.type.value, notification.category.value,
                notification.title, notification.message,
                json.dumps(notification.data, default=str),
                notification.status.value, notification.priority.value,
                json.dumps(notification.channels_to_dict()),
                _ts(notification.created_at), _ts(notification.expires_at),
            ))
            self.conn.commit()
        notification.id = cur.lastrowid
        return notification

    def _row_to_notification(self, row):
        channels = json.loads(row["channels"])
        return Notification(
            id=row["id"],
            user_id=row["user_id"],
            pet_id=row["pet_id"],
            type=NotificationType(row["type"]),
            category=NotificationCategory(row["category"]),
            title=row["title"],
            message=row["message"],
            data=json.loads(row["data"]) if row["data"] else {},
            status=NotificationStatus(row["status"]),
            priority=NotificationPriority(row["priority"]),
            channels={c: ChannelState.from_dict(channels.get(c.value)) for c in Channel},
            created_at=_parse_ts(row["created_at"]),
            expires_at=_parse_ts(row["expires_at"]),
        )

    def get_notifications(self, user_id, status=None, limit=20):
        query = "SELECT * FROM notifications WHERE user_id = ?"
        params = [user_id]
        if status:
            query += " AND status = ?"
            params.append(status.value if hasattr(status, "value") else status)
        query += " AND (expires_at IS NULL OR expires_at > ?)"
        params.append(_ts(datetime.now(timezone.utc)))
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_notification(r) for r in rows]

    def unread_count(self, user_id):
        with self._lock:
            row = self.conn.execute("""
                SELECT COUNT(*) as cnt FROM notifications
                WHERE user_id = ? AND status = 'unread'
            """, (user_id,)).fetchone()
        return row["cnt"]

    def update_notification_channels(self, notification):
        with self._lock:
            self.conn.execute(
                "UPDATE notifications SET channels = ? WHERE id = ?",
                (json.dumps(notification.channels_to_dict()), notification.id),
            )
            self.conn.commit()

    def delete_expired_notifications(self, now=None):
        """Delete notifications whose expires_at has passed. Returns the number removed."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            cur = self.conn.execute(
                "DELETE FROM notifications WHERE expires_at IS NOT NULL AND expires_at < ?",
                (_ts(now),),
            )
            self.conn.commit()
        return cur.rowcount

    def find_undelivered_notifications(self, limit=50, max_attempts=3, now=None):
        """Unexpired notifications with an addressed email/push send still pending or failed."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            rows = self.conn.execute("""
                SELECT * FROM notifications
                WHERE (expires_at IS NULL OR expires_at > ?)
                  AND (
                    (json_extract(channels, '$.email.emailAddress') IS NOT NULL
                     AND json_extract(channels, '$.email.deliveryStatus') IN ('pending', 'failed')
                     AND COALESCE(json_extract(channels, '$.email.attempts'), 0) < ?)
                    OR
                    (json_extract(channels, '$.push.deviceTokens') IS NOT NULL
                     AND json_extract(channels, '$.push.deliveryStatus') IN ('pending', 'failed')
                     AND COALESCE(json_extract(channels, '$.push.attempts'), 0) < ?)
                  )
                ORDER BY created_at, id
                LIMIT ?
            """, (_ts(now), max_attempts, max_attempts, limit)).fetchall()
        return [self._row_to_notification(r) for r in rows]

    def get_notification_statistics(self, user_id, days=30, now=None):
        now = now or datetime.now(timezone.utc)
        since = _ts(now - timedelta(days=days))

        def grouped(column):
            rows = self.conn.execute(f"""
                SELECT {column} AS k, COUNT(*) AS cnt FROM notifications
                WHERE user_id = ? AND created_at >= ?
                GROUP BY k ORDER BY k
            """, (user_id, since)).fetchall()
            return {r["k"]: r["cnt"] for r in rows}

        with self._lock:
            by_status = grouped("status")
            by_type = grouped("type")
            by_category = grouped("category")
            by_priority = grouped("priority")
            daily = grouped("substr(created_at, 1, 10)")

        return {
            "totalNotifications": sum(by_status.values()),
            "unreadCount": by_status.get(NotificationStatus.UNREAD.value, 0),
            "readCount": by_status.get(NotificationStatus.READ.value, 0),
            "archivedCount": by_status.get(NotificationStatus.ARCHIVED.value, 0),
            "byType": by_type,
            "byCategory": by_category,
            "byPriority": by_priority,
            "recentActivity": [{"date": d, "count": c} for d, c in daily.items()],
        }


    # --- Users & Pets ---

    def upsert_user(self, user_id, email=None, device_tokens=None):
        """Create or update a contact. Fields passed as None keep their stored value."""
        tokens = json.dumps(list(device_tokens)) if device_tokens is not None else None
        with self._lock:
            self.conn.execute("""
                INSERT INTO users (user_id, email, device_tokens)
                VALUES (?, ?, COALESCE(?, '[]'))
                ON CONFLICT(user_id) DO UPDATE SET
                    email = COALESCE(excluded.email, users.email),
                    device_tokens = COALESCE(?, users.device_tokens)
            """, (user_id, email, tokens, tokens))
            self.conn.commit()

    def add_pet(self, pet_id, user_id, name):
        with self._lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO pets (pet_id, user_id, name) VALUES (?, ?, ?)",
                (pet_id, user_id, name),
            )
            self.conn.commit()

    def get_contact(self, user_id):
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM users WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return {"email": None, "device_tokens": []}
        return {
            "email": row["email"],
            "device_tokens": json.loads(row["device_tokens"] or "[]"),
        }

    def get_pet_name(self, pet_id):
        with self._lock:
            row = self.conn.execute(
                "SELECT name FROM pets WHERE pet_id = ?", (pet_id,)
            ).fetchone()
        return row["name"] if row else None
