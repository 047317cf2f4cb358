"""Alert rule management: validation, CRUD, default rules, and statistics."""
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import yaml

from alerts.errors import ValidationError
from models.alerts import AlertRule, RuleTriggers, RuleNotifications, RuleFrequency
from models.enums import AnomalyType, Severity

logger = logging.getLogger("petalerts.alerts.rules")

DEFAULT_RULES_PATH = Path(__file__).parent.parent / "config" / "default_rules.yaml"
TEMPLATES_PATH = Path(__file__).parent.parent / "config" / "alert_templates.yaml"

LIMITS = {
    "max_per_day": (1, 10),
    "max_per_week": (1, 50),
    "cooldown_hours": (1, 72),
}
NAME_MAX = 100
DESCRIPTION_MAX = 500


def _get(d, snake, camel, default=None):
    if snake in d:
        return d[snake]
    return d.get(camel, default)


def _as_int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field) from None


def _as_bool(value, field):
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", field=field)
    return value


class RulesManager:
    def __init__(self, repo, defaults_path=DEFAULT_RULES_PATH, templates_path=TEMPLATES_PATH):
        self.repo = repo
        self.defaults_path = Path(defaults_path)
        self.templates_path = Path(templates_path)

    # ── parsing & validation ─────────────────────────

    def _parse_triggers(self, raw, base=None):
        base = base or RuleTriggers()
        raw = raw or {}
        types = _get(raw, "anomaly_types", "anomalyTypes")
        levels = _get(raw, "severity_levels", "severityLevels")
        confidence = _get(raw, "minimum_confidence", "minimumConfidence")

        triggers = RuleTriggers(
            anomaly_types=set(base.anomaly_types),
            severity_levels=set(base.severity_levels),
            minimum_confidence=base.minimum_confidence,
        )
        if types is not None:
            try:
                triggers.anomaly_types = {AnomalyType(t) for t in types}
            except (ValueError, TypeError):
                raise ValidationError(f"Invalid anomaly types: {types}", field="anomalyTypes") from None
        if levels is not None:
            try:
                triggers.severity_levels = {Severity(s) for s in levels}
            except (ValueError, TypeError):
                raise ValidationError(f"Invalid severity levels: {levels}", field="severityLevels") from None
        if confidence is not None:
            triggers.minimum_confidence = _as_int(confidence, "minimumConfidence")
        return triggers

    def _parse_notifications(self, raw, base=None):
        base = base or RuleNotifications()
        raw = raw or {}
        in_app = _get(raw, "in_app", "inApp")
        return RuleNotifications(
            in_app=_as_bool(in_app, "inApp") if in_app is not None else base.in_app,
            email=_as_bool(raw["email"], "email") if "email" in raw else base.email,
            push=_as_bool(raw["push"], "push") if "push" in raw else base.push,
        )

    def _parse_frequency(self, raw, base=None):
        base = base or RuleFrequency()
        raw = raw or {}
        values = {}
        for snake, camel in (("max_per_day", "maxPerDay"), ("max_per_week", "maxPerWeek"),
                             ("cooldown_hours", "cooldownHours")):
            value = _get(raw, snake, camel)
            values[snake] = _as_int(value, camel) if value is not None else getattr(base, snake)
        return RuleFrequency(**values)

    def validate(self, rule):
        """Raise ValidationError if the rule breaks a configuration limit."""
        if not rule.user_id:
            raise ValidationError("userId is required", field="userId")
        if not rule.name or not rule.name.strip():
            raise ValidationError("Rule name cannot be empty", field="name")
        if len(rule.name) > NAME_MAX:
            raise ValidationError(f"Rule name cannot exceed {NAME_MAX} characters", field="name")
        if len(rule.description or "") > DESCRIPTION_MAX:
            raise ValidationError(f"Description cannot exceed {DESCRIPTION_MAX} characters",
                                  field="description")
        if not rule.triggers.anomaly_types:
            raise ValidationError("Select at least one anomaly type", field="anomalyTypes")
        if not rule.triggers.severity_levels:
            raise ValidationError("Select at least one severity level", field="severityLevels")
        if not 0 <= rule.triggers.minimum_confidence <= 100:
            raise ValidationError("minimumConfidence must be between 0 and 100",
                                  field="minimumConfidence")
        for field, (low, high) in LIMITS.items():
            value = getattr(rule.frequency, field)
            if not low <= value <= high:
                raise ValidationError(f"{field} must be between {low} and {high}", field=field)
        if rule.frequency.max_per_day > rule.frequency.max_per_week:
            raise ValidationError("maxPerDay cannot exceed maxPerWeek", field="maxPerDay")

    def build_rule(self, user_id, data):
        rule = AlertRule(
            user_id=str(user_id) if user_id is not None else "",
            pet_id=_get(data, "pet_id", "petId"),
            name=data.get("name", ""),
            description=data.get("description", "") or "",
            is_active=_as_bool(_get(data, "is_active", "isActive", True), "isActive"),
            triggers=self._parse_triggers(data.get("triggers")),
            notifications=self._parse_notifications(data.get("notifications")),
            frequency=self._parse_frequency(data.get("frequency")),
        )
        self.validate(rule)
        return rule

    # ── CRUD ─────────────────────────────────────────

    def create_rule(self, user_id, data):
        rule = self.build_rule(user_id, data)
        self.repo.save_rule(rule)
        logger.info(f"Created alert rule {rule.id} for user {user_id}: {rule.name}")
        return rule

    def update_rule(self, rule_id, updates):
        """Apply a partial update. Returns the updated rule or None if it does not exist."""
        rule = self.repo.get_rule(rule_id)
        if rule is None:
            logger.warning(f"Alert rule not found: {rule_id}")
            return None

        if "name" in updates:
            rule.name = updates["name"]
        if "description" in updates:
            rule.description = updates["description"] or ""
        if "petId" in updates or "pet_id" in updates:
            rule.pet_id = _get(updates, "pet_id", "petId")
        active = _get(updates, "is_active", "isActive")
        if active is not None:
            rule.is_active = _as_bool(active, "isActive")
        if "triggers" in updates:
            rule.triggers = self._parse_triggers(updates["triggers"], rule.triggers)
        if "notifications" in updates:
            rule.notifications = self._parse_notifications(updates["notifications"], rule.notifications)
        if "frequency" in updates:
            rule.frequency = self._parse_frequency(updates["frequency"], rule.frequency)

        self.validate(rule)
        self.repo.save_rule(rule)
        logger.info(f"Updated alert rule {rule_id}")
        return rule

    def delete_rule(self, rule_id):
        deleted = self.repo.delete_rule(rule_id)
        if deleted:
            logger.info(f"Deleted alert rule {rule_id}")
        else:
            logger.warning(f"Alert rule not found: {rule_id}")
        return deleted

    def get_rule(self, rule_id):
        return self.repo.get_rule(rule_id)

    def get_user_rules(self, user_id, pet_id=None, include_inactive=False):
        return self.repo.find_rules_for_user(user_id, pet_id, include_inactive=include_inactive)

    # ── defaults ─────────────────────────────────────

    @staticmethod
    def _load_list(path, key):
        if not path.exists():
            logger.warning(f"Rules file not found: {path}")
            return []
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return data.get(key, [])

    def load_default_templates(self):
        return self._load_list(self.defaults_path, "rules")

    def get_templates(self):
        """Rule templates in the request shape accepted by create_rule."""
        return self._load_list(self.templates_path, "templates")

    def create_from_template(self, user_id, template_id, pet_id=None):
        template = next((t for t in self.get_templates() if t.get("id") == template_id), None)
        if template is None:
            raise ValidationError(f"Unknown rule template: {template_id}", field="template")
        data = {k: v for k, v in template.items() if k not in ("id", "category")}
        if pet_id is not None:
            data["petId"] = pet_id
        return self.create_rule(user_id, data)

    def create_default_rules(self, user_id):
        """Bootstrap the default rule set for a user. Existing names are skipped."""
        existing = {r.name for r in self.get_user_rules(user_id, include_inactive=True)}
        created = 0
        for template in self.load_default_templates():
            if template.get("name") in existing:
                continue
            try:
                self.create_rule(user_id, template)
                created += 1
            except ValidationError as e:
                logger.warning(f"Invalid default rule {template.get('name')}: {e}")
        logger.info(f"Created {created} default rules for user {user_id}")
        return created

    # ── statistics ───────────────────────────────────

    def get_statistics(self, user_id, days=30):
        rules = self.get_user_rules(user_id, include_inactive=True)
        since = datetime.now(timezone.utc) - timedelta(days=days)
        recent = self.repo.get_recent_triggers(user_id, since, limit=10)

        return {
            "totalRules": len(rules),
            "activeRules": sum(1 for r in rules if r.is_active),
            "totalTriggered": sum(r.stats.total_triggered for r in rules),
            "totalNotificationsSent": sum(r.stats.total_notifications_sent for r in rules),
            "recentTriggers": [
                {
                    "ruleName": t["rule_name"],
                    "petId": t["pet_id"],
                    "triggeredAt": t["triggered_at"],
                    "anomalyType": t["anomaly_type"] or "unknown",
                    "severity": t["severity"] or "unknown",
                }
                for t in recent
            ],
            "rulePerformance": [
                {
                    "ruleId": r.id,
                    "ruleName": r.name,
                    "totalTriggered": r.stats.total_triggered,
                    "lastTriggered": r.stats.last_triggered.isoformat() if r.stats.last_triggered else None,
                    "isActive": r.is_active,
                }
                for r in rules
            ],
        }
