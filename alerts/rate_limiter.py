"""Per-rule rate limiting: cooldown plus rolling daily and weekly caps."""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

from models.alerts import TriggerRecord

logger = logging.getLogger("petalerts.alerts.rate_limiter")

DAY = timedelta(hours=24)
WEEK = timedelta(days=7)


@runtime_checkable
class TriggerLog(Protocol):
    def record_trigger(self, record) -> None: ...

    def count_triggers(self, rule_id, since, until) -> int: ...


def _aware(dt):
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class RateLimiter:
    """Decides whether a rule may fire and records the fires that happen.

    Daily and weekly windows are rolling, counted from the trigger log over
    [now - window, now). The cooldown is measured from stats.last_triggered.
    """

    def __init__(self, trigger_log, clock=None):
        self.trigger_log = trigger_log
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, rule_id):
        with self._registry_lock:
            lock = self._locks.get(rule_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[rule_id] = lock
            return lock

    @contextmanager
    def reserve(self, rule):
        """Hold the rule's lock across check, dispatch, record and save."""
        lock = self._lock_for(rule.id)
        with lock:
            yield

    def cooldown_remaining(self, rule, now=None):
        now = _aware(now or self.clock())
        last = _aware(rule.stats.last_triggered)
        if last is None:
            return timedelta(0)
        remaining = timedelta(hours=rule.frequency.cooldown_hours) - (now - last)
        return max(remaining, timedelta(0))

    def can_trigger(self, rule, now=None) -> bool:
        if not rule.is_active:
            return False
        now = _aware(now or self.clock())

        if self.cooldown_remaining(rule, now) > timedelta(0):
            logger.debug(f"Rule {rule.id} in cooldown")
            return False

        day_count = self.trigger_log.count_triggers(rule.id, now - DAY, now)
        if day_count >= rule.frequency.max_per_day:
            logger.debug(f"Rule {rule.id} hit daily cap ({day_count}/{rule.frequency.max_per_day})")
            return False

        week_count = self.trigger_log.count_triggers(rule.id, now - WEEK, now)
        if week_count >= rule.frequency.max_per_week:
            logger.debug(f"Rule {rule.id} hit weekly cap ({week_count}/{rule.frequency.max_per_week})")
            return False

        return True

    def record_trigger(self, rule, anomaly=None, pet_id=None, now=None):
        """Update rule stats and append to the trigger log. Caller persists the rule."""
        now = _aware(now or self.clock())
        rule.stats.total_triggered += 1
        rule.stats.last_triggered = now
        self.trigger_log.record_trigger(TriggerRecord(
            rule_id=rule.id,
            pet_id=pet_id if pet_id is not None else rule.pet_id,
            anomaly_type=anomaly.anomaly_type if anomaly else None,
            severity=anomaly.severity if anomaly else None,
            triggered_at=now,
        ))
