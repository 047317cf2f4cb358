"""Notification housekeeping: drop expired records, retry undelivered email/push sends."""
import logging
from datetime import datetime, timezone

from models.notifications import MaintenanceRunResult

logger = logging.getLogger("petalerts.alerts.maintenance")


class NotificationMaintenance:
    def __init__(self, db, dispatcher, batch_size=50, max_attempts=3, clock=None):
        self.db = db
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def cleanup_expired(self):
        deleted = self.db.delete_expired_notifications(self.clock())
        logger.info(f"Removed {deleted} expired notifications")
        return deleted

    def retry_undelivered(self, result=None):
        """Redeliver up to batch_size notifications. A notification counts as
        successful only if every channel retried for it went through."""
        result = result or MaintenanceRunResult()
        pending = self.db.find_undelivered_notifications(
            limit=self.batch_size, max_attempts=self.max_attempts, now=self.clock(),
        )
        for notification in pending:
            outcome = self.dispatcher.redeliver(notification, max_attempts=self.max_attempts)
            if not outcome:
                continue
            result.processed += 1
            failed = [c.value for c, ok in outcome.items() if not ok]
            if failed:
                result.failed += 1
                result.errors.append(
                    f"Notification {notification.id} redelivery failed: {', '.join(failed)}"
                )
            else:
                result.successful += 1

        logger.info(f"Redelivery pass: {result.processed} processed, "
                    f"{result.successful} delivered, {result.failed} failed")
        return result

    def run(self):
        """Cleanup then redelivery. A failure in one step is reported, not raised."""
        result = MaintenanceRunResult()
        try:
            result.expired_deleted = self.cleanup_expired()
        except Exception as e:
            logger.error(f"Expired notification cleanup failed: {e}")
            result.errors.append(f"Cleanup failed: {e}")
        try:
            self.retry_undelivered(result)
        except Exception as e:
            logger.error(f"Notification redelivery failed: {e}")
            result.errors.append(f"Redelivery failed: {e}")
        result.finished_at = datetime.now(timezone.utc)
        return result
