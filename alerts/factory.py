"""Wires the alert components together from config."""
import logging

from alerts.batch import BatchScheduler
from alerts.channels import ChannelDispatcher
from alerts.detector import HTTPAnomalyDetector
from alerts.engine import AlertEngine
from alerts.maintenance import NotificationMaintenance
from alerts.rate_limiter import RateLimiter
from alerts.rules_manager import RulesManager
from notifications.email_sender import EmailSender
from notifications.push_sender import PushSender

logger = logging.getLogger("petalerts.factory")


def build_components(config, db, detector=None, email_sender=None, push_sender=None):
    """Build the engine stack on top of an open Database.

    Returns a dict of components keyed by name, the way the CLI and the web
    app consume them.
    """
    alerts_cfg = config["alerts"]

    if detector is None:
        detector = HTTPAnomalyDetector(config)
    if email_sender is None and config.get("email", {}).get("enabled", False):
        email_sender = EmailSender(config)
    if push_sender is None and config.get("push", {}).get("enabled", False):
        push_sender = PushSender(config)

    rate_limiter = RateLimiter(db)
    dispatcher = ChannelDispatcher(
        notifications=db,
        contacts=db,
        email_sender=email_sender,
        push_sender=push_sender,
        send_timeout=alerts_cfg["send_timeout_seconds"],
    )
    engine = AlertEngine(
        rules=db,
        detector=detector,
        dispatcher=dispatcher,
        rate_limiter=rate_limiter,
        contacts=db,
        detect_timeout=alerts_cfg["detect_timeout_seconds"],
    )
    batch = BatchScheduler(
        rules=db,
        engine=engine,
        max_workers=alerts_cfg["batch_workers"],
        pair_timeout=alerts_cfg["pair_timeout_seconds"],
    )
    rules = RulesManager(db)
    maintenance = NotificationMaintenance(
        db, dispatcher,
        batch_size=alerts_cfg.get("redelivery_batch_size", 50),
        max_attempts=alerts_cfg.get("max_delivery_attempts", 3),
    )

    logger.debug(
        f"Components ready (email={'on' if email_sender else 'off'}, "
        f"push={'on' if push_sender else 'off'}, workers={batch.max_workers})"
    )
    return {
        "config": config, "db": db, "rules": rules, "engine": engine,
        "batch": batch, "dispatcher": dispatcher, "rate_limiter": rate_limiter,
        "detector": detector, "maintenance": maintenance,
    }
