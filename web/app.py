"""
Flask HTTP surface for the alert subsystem.

Trigger points:
  POST   /alerts/trigger/<pet_id>    check one pet now
  POST   /alerts/batch-check         run the system-wide sweep
  GET    /alerts/statistics          aggregated rule stats for the caller
  GET    /alerts/templates           rule templates to start from

Rule management:
  GET    /alerts/rules               list the caller's rules
  POST   /alerts/rules               create a rule
  PUT    /alerts/rules/<rule_id>     update a rule
  DELETE /alerts/rules/<rule_id>     delete a rule
  POST   /alerts/rules/defaults      bootstrap the default rule set

Notifications:
  GET    /notifications              the caller's notifications
  GET    /notifications/statistics   counts by status, type, category and day

The caller is identified by the X-User-Id header; authentication happens
upstream.

Started via: petalerts web [--port 5000] [--host 0.0.0.0]
"""
import logging
from functools import wraps

from flask import Flask, jsonify, request, g

from alerts.errors import AlertCheckFailed, ValidationError

logger = logging.getLogger("petalerts.web.app")


def _int_arg(name, default, low, high):
    """Integer query argument in [low, high]; anything else is a ValidationError."""
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", field=name) from None
    if not low <= value <= high:
        raise ValidationError(f"{name} must be between {low} and {high}", field=name)
    return value


def create_app(config: dict, components: dict) -> Flask:
    """
    Factory function. Receives initialized components from the CLI or wsgi.

    Args:
        config: Application config dict
        components: dict with at least engine, batch, rules, db
    """
    app = Flask(__name__)

    def require_user(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            user_id = request.headers.get("X-User-Id")
            if not user_id:
                return jsonify({"error": "Missing X-User-Id header"}), 401
            g.user_id = user_id
            return view(*args, **kwargs)
        return wrapper

    def owned_rule(rule_id):
        rule = components["rules"].get_rule(rule_id)
        if rule is None or rule.user_id != g.user_id:
            return None
        return rule

    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify({"error": str(e), "field": e.field}), 400

    # ─── Trigger points ─────────────────────────────────

    @app.route("/alerts/trigger/<pet_id>", methods=["POST"])
    @require_user
    def trigger(pet_id):
        try:
            results = components["engine"].check_and_trigger_alerts(pet_id, g.user_id)
        except AlertCheckFailed as e:
            logger.error(f"Alert check failed for pet {pet_id}: {e}")
            return jsonify({"error": "Alert check failed", "detail": str(e)}), 503
        return jsonify({
            "results": [r.to_dict() for r in results],
            "count": len(results),
        })

    @app.route("/alerts/batch-check", methods=["POST"])
    def batch_check():
        result = components["batch"].batch_check_alerts()
        return jsonify(result.to_dict())

    @app.route("/alerts/statistics")
    @require_user
    def statistics():
        days = _int_arg("days", 30, 1, 365)
        return jsonify(components["rules"].get_statistics(g.user_id, days=days))

    @app.route("/alerts/templates")
    @require_user
    def templates():
        items = components["rules"].get_templates()
        return jsonify({"templates": items, "total": len(items)})

    # ─── Rules ──────────────────────────────────────────

    @app.route("/alerts/rules", methods=["GET"])
    @require_user
    def list_rules():
        include_inactive = request.args.get("includeInactive", "false").lower() == "true"
        rules = components["rules"].get_user_rules(
            g.user_id, pet_id=request.args.get("petId"), include_inactive=include_inactive,
        )
        return jsonify({"rules": [r.to_dict() for r in rules], "count": len(rules)})

    @app.route("/alerts/rules", methods=["POST"])
    @require_user
    def create_rule():
        data = request.get_json(silent=True) or {}
        rule = components["rules"].create_rule(g.user_id, data)
        return jsonify(rule.to_dict()), 201

    @app.route("/alerts/rules/<int:rule_id>", methods=["PUT"])
    @require_user
    def update_rule(rule_id):
        if owned_rule(rule_id) is None:
            return jsonify({"error": "Rule not found"}), 404
        updates = request.get_json(silent=True) or {}
        updates.pop("userId", None)
        rule = components["rules"].update_rule(rule_id, updates)
        return jsonify(rule.to_dict())

    @app.route("/alerts/rules/<int:rule_id>", methods=["DELETE"])
    @require_user
    def delete_rule(rule_id):
        if owned_rule(rule_id) is None:
            return jsonify({"error": "Rule not found"}), 404
        components["rules"].delete_rule(rule_id)
        return jsonify({"deleted": True})

    @app.route("/alerts/rules/defaults", methods=["POST"])
    @require_user
    def default_rules():
        created = components["rules"].create_default_rules(g.user_id)
        return jsonify({"created": created})

    # ─── Notifications ──────────────────────────────────

    @app.route("/notifications")
    @require_user
    def notifications():
        limit = _int_arg("limit", 20, 1, 100)
        db = components["db"]
        items = db.get_notifications(g.user_id, status=request.args.get("status"), limit=limit)
        return jsonify({
            "notifications": [n.to_dict() for n in items],
            "count": len(items),
            "unread": db.unread_count(g.user_id),
        })

    @app.route("/notifications/statistics")
    @require_user
    def notification_statistics():
        days = _int_arg("days", 30, 1, 365)
        return jsonify(components["db"].get_notification_statistics(g.user_id, days=days))

    return app
