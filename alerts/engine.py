"""Alert evaluation engine: anomalies × rules → rate limit → dispatch."""
import logging
from datetime import datetime, timezone

from alerts.errors import AlertCheckFailed, DetectionUnavailable
from alerts.matcher import RuleMatcher
from models.alerts import AlertTriggerResult
from utils.timeouts import call_with_timeout

logger = logging.getLogger("petalerts.alerts.engine")


class AlertEngine:
    def __init__(self, rules, detector, dispatcher, rate_limiter, contacts=None,
                 detect_timeout=30, clock=None):
        self.rules = rules
        self.detector = detector
        self.dispatcher = dispatcher
        self.rate_limiter = rate_limiter
        self.contacts = contacts
        self.detect_timeout = detect_timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _load_rules(self, pet_id, user_id):
        try:
            rules = self.rules.find_active_rules_for_user(user_id, pet_id)
        except Exception as e:
            raise AlertCheckFailed(f"Failed to load rules for user {user_id}: {e}",
                                   pet_id=pet_id, user_id=user_id) from e
        return [r for r in rules if r.is_active and r.applies_to_pet(pet_id)]

    def _detect(self, pet_id, user_id):
        try:
            try:
                return list(call_with_timeout(self.detector.detect_anomalies,
                                              self.detect_timeout, pet_id) or [])
            except TimeoutError as e:
                raise DetectionUnavailable(str(e), pet_id=pet_id) from e
        except Exception as e:
            raise AlertCheckFailed(f"Anomaly detection failed for pet {pet_id}: {e}",
                                   pet_id=pet_id, user_id=user_id) from e

    def _reload(self, rule):
        """Fresh copy of the rule, so stats reflect triggers from other callers."""
        getter = getattr(self.rules, "get_rule", None)
        if getter is None or rule.id is None:
            return rule
        return getter(rule.id)

    def check_and_trigger_alerts(self, pet_id, user_id, cancel=None):
        """Evaluate one pet for one user. Results are in anomaly-then-rule order.

        Storage errors while triggering one (anomaly, rule) pair are logged and
        that pair is skipped; only loading failures raise AlertCheckFailed.
        Setting `cancel` (a threading.Event) stops evaluation before the next pair.
        """
        logger.info(f"Checking alerts: pet={pet_id}, user={user_id}")

        rules = self._load_rules(pet_id, user_id)
        if not rules:
            logger.info("No active alert rules; skipping detection")
            return []

        anomalies = self._detect(pet_id, user_id)
        if not anomalies:
            logger.info(f"No anomalies detected for pet {pet_id}")
            return []

        pet_name = self.contacts.get_pet_name(pet_id) if self.contacts else None
        results = []
        for anomaly in anomalies:
            for rule in rules:
                if cancel is not None and cancel.is_set():
                    logger.warning(f"Alert check for pet {pet_id} cancelled after "
                                   f"{len(results)} triggers")
                    return results
                if not RuleMatcher.matches(rule, anomaly):
                    continue
                result = self._trigger(rule, anomaly, pet_id, user_id, pet_name)
                if result is not None:
                    results.append(result)

        logger.info(f"Alert check complete for pet {pet_id}: {len(results)} triggered")
        return results

    def _trigger(self, rule, anomaly, pet_id, user_id, pet_name):
        with self.rate_limiter.reserve(rule):
            try:
                current = self._reload(rule)
                if current is None:
                    logger.info(f"Rule {rule.id} was deleted during evaluation")
                    return None
                if not RuleMatcher.matches(current, anomaly):
                    return None
                if not self.rate_limiter.can_trigger(current, self.clock()):
                    logger.debug(f"Rule {current.name} rate limited")
                    return None
            except Exception as e:
                logger.error(f"Rate check failed for rule {rule.id}, pet {pet_id}: {e}")
                return None

            logger.info(f"Triggering rule {current.name}: {anomaly.anomaly_type.value} "
                        f"({anomaly.severity.value}, {anomaly.confidence}%)")
            sent = self.dispatcher.dispatch(current, anomaly, pet_id)
            triggered_at = self.clock()
            current.stats.total_notifications_sent += sum(1 for ok in sent.values() if ok)

            # notifications are out; bookkeeping failures are logged, not raised
            try:
                self.rate_limiter.record_trigger(current, anomaly, pet_id, triggered_at)
            except Exception as e:
                logger.error(f"Failed to log trigger of rule {current.id}: {e}")
            try:
                self.rules.save_rule(current)
            except Exception as e:
                logger.error(f"Failed to save stats for rule {current.id}: {e}")

            # keep the caller's copy in step for later anomalies in this call
            rule.stats = current.stats

        return AlertTriggerResult(
            rule_id=current.id,
            rule_name=current.name,
            anomaly=anomaly,
            pet_id=pet_id,
            pet_name=pet_name,
            user_id=user_id,
            notifications_sent=sent,
            triggered_at=triggered_at,
        )

    def test_rules(self, pet_id, user_id, anomalies=None):
        """Evaluate rules against anomalies without dispatching, for validation."""
        rules = self._load_rules(pet_id, user_id)
        if anomalies is None:
            anomalies = self._detect(pet_id, user_id) if rules else []
        now = self.clock()
        results = []
        for anomaly in anomalies:
            for rule in rules:
                matched = RuleMatcher.matches(rule, anomaly)
                results.append({
                    "rule_id": rule.id,
                    "name": rule.name,
                    "anomaly_type": anomaly.anomaly_type.value,
                    "severity": anomaly.severity.value,
                    "confidence": anomaly.confidence,
                    "matches": matched,
                    "can_trigger": self.rate_limiter.can_trigger(rule, now),
                    "would_fire": matched and self.rate_limiter.can_trigger(rule, now),
                })
        return results

    def format_alert_summary(self, results):
        """Format trigger results for display."""
        if not results:
            return "All clear - no alerts triggered."
        lines = []
        for r in results:
            icon = {"high": "!!!", "medium": "!!", "low": "i"}.get(r.anomaly.severity.value, "?")
            channels = ", ".join(
                f"{c.value}={'ok' if ok else 'failed'}" for c, ok in r.notifications_sent.items()
            )
            lines.append(f"[{icon}] [{r.anomaly.severity.value.upper()}] {r.rule_name}: "
                         f"{r.anomaly.description} ({channels})")
        return "\n".join(lines)
