"""Per-channel notification dispatch: in-app, email, push."""
import logging
from datetime import datetime, timezone

from alerts.errors import ChannelDeliveryFailed, ChannelTimeout
from alerts.matcher import RuleMatcher
from models.enums import Channel, DeliveryStatus, NotificationType
from models.notifications import Notification
from utils.timeouts import call_with_timeout

logger = logging.getLogger("petalerts.alerts.channels")

EMAIL_RECOMMENDATION_LIMIT = 3
PUSH_RECOMMENDATION_LIMIT = 2


class ChannelDispatcher:
    """Sends one notification through one channel and reports the outcome.

    Every channel attempt persists its own Notification record with only that
    channel's state touched. send() never raises: failures come back as False
    so the caller can aggregate a per-channel map.
    """

    def __init__(self, notifications, contacts=None, email_sender=None, push_sender=None,
                 send_timeout=10, clock=None):
        self.notifications = notifications
        self.contacts = contacts
        self.email_sender = email_sender
        self.push_sender = push_sender
        self.send_timeout = send_timeout
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ── message construction ─────────────────────────

    @staticmethod
    def format_title(rule, anomaly):
        return f"{rule.name} - {RuleMatcher.title(anomaly.anomaly_type)}"

    @staticmethod
    def format_message(channel, anomaly):
        if channel != Channel.EMAIL or not anomaly.recommendations:
            return anomaly.description
        bullets = "\n".join(f"• {r}" for r in anomaly.recommendations[:EMAIL_RECOMMENDATION_LIMIT])
        return f"{anomaly.description}\n\nRecommended actions:\n{bullets}"

    def build_notification(self, channel, rule, anomaly, pet_id, pet_name=None):
        recommendations = list(anomaly.recommendations)
        if channel == Channel.PUSH:
            recommendations = recommendations[:PUSH_RECOMMENDATION_LIMIT]
        return Notification(
            user_id=rule.user_id,
            pet_id=pet_id,
            type=NotificationType.ALERT,
            category=RuleMatcher.category(anomaly.anomaly_type),
            priority=RuleMatcher.priority(anomaly.severity),
            title=self.format_title(rule, anomaly),
            message=self.format_message(channel, anomaly),
            data={
                "alertRuleId": rule.id,
                "anomalyType": anomaly.anomaly_type.value,
                "severity": anomaly.severity.value,
                "petName": pet_name,
                "actionUrl": f"/pets/{pet_id}/health",
                "metadata": {
                    "confidence": anomaly.confidence,
                    "recommendations": recommendations,
                    "triggerData": anomaly.trigger_data,
                },
            },
            created_at=self.clock(),
        )

    # ── dispatch ─────────────────────────────────────

    def dispatch(self, rule, anomaly, pet_id):
        """Send through every channel the rule enables. Returns {Channel: bool}."""
        results = {c: False for c in Channel}
        for channel in rule.notifications.enabled_channels():
            results[channel] = self.send(channel, rule, anomaly, pet_id)
        return results

    def send(self, channel, rule, anomaly, pet_id) -> bool:
        try:
            channel = Channel(channel)
            pet_name = self.contacts.get_pet_name(pet_id) if self.contacts else None
            notification = self.build_notification(channel, rule, anomaly, pet_id, pet_name)

            if channel == Channel.IN_APP:
                notification.channel(Channel.IN_APP).mark_sent(self.clock())
                self.notifications.create_notification(notification)
                delivered = True
            elif channel == Channel.EMAIL:
                delivered = self._deliver_email(notification)
            else:
                delivered = self._deliver_push(notification)

            logger.info(f"{channel.value} notification {'sent' if delivered else 'failed'}: "
                        f"rule={rule.name}, anomaly={anomaly.anomaly_type.value}, pet={pet_id}")
            return delivered
        except ChannelDeliveryFailed as e:
            failed = e.channel or channel
            logger.warning(f"{getattr(failed, 'value', failed)} delivery failed for rule {rule.id}: {e}")
            return False
        except Exception as e:
            logger.warning(f"Channel dispatch error ({getattr(channel, 'value', channel)}) for rule {rule.id}: {e}")
            return False

    def _contact(self, user_id):
        if self.contacts is None:
            return {"email": None, "device_tokens": []}
        return self.contacts.get_contact(user_id)

    def _outbound(self, channel, fn, *args):
        try:
            return bool(call_with_timeout(fn, self.send_timeout, *args))
        except TimeoutError as e:
            raise ChannelTimeout(str(e), channel=channel) from e
        except Exception as e:
            raise ChannelDeliveryFailed(str(e), channel=channel) from e

    def _record_outcome(self, notification, channel, delivered):
        self._mark(notification.channel(channel), delivered)
        self.notifications.create_notification(notification)

    def _mark(self, state, delivered):
        state.attempts += 1
        if delivered:
            state.mark_sent(self.clock(), DeliveryStatus.SENT)
        else:
            state.delivery_status = DeliveryStatus.FAILED

    def _deliver_email(self, notification):
        if self.email_sender is None:
            raise ChannelDeliveryFailed("no email sender configured", channel=Channel.EMAIL)
        address = self._contact(notification.user_id).get("email")
        if not address:
            raise ChannelDeliveryFailed(f"user {notification.user_id} has no email address",
                                        channel=Channel.EMAIL)

        notification.channel(Channel.EMAIL).email_address = address
        try:
            delivered = self._outbound(Channel.EMAIL, self.email_sender.send_email,
                                       address, notification.title, notification.message)
        except ChannelDeliveryFailed:
            self._record_outcome(notification, Channel.EMAIL, False)
            raise
        self._record_outcome(notification, Channel.EMAIL, delivered)
        return delivered

    def _deliver_push(self, notification):
        if self.push_sender is None:
            raise ChannelDeliveryFailed("no push sender configured", channel=Channel.PUSH)
        tokens = self._contact(notification.user_id).get("device_tokens") or []
        if not tokens:
            raise ChannelDeliveryFailed(f"user {notification.user_id} has no device tokens",
                                        channel=Channel.PUSH)

        notification.channel(Channel.PUSH).device_tokens = list(tokens)
        try:
            delivered = self._outbound(Channel.PUSH, self.push_sender.send_push,
                                       tokens, self._push_payload(notification))
        except ChannelDeliveryFailed:
            self._record_outcome(notification, Channel.PUSH, False)
            raise
        self._record_outcome(notification, Channel.PUSH, delivered)
        return delivered

    @staticmethod
    def _push_payload(notification):
        data = notification.data or {}
        return {
            "title": notification.title,
            "body": notification.message,
            "data": {
                "actionUrl": data.get("actionUrl"),
                "alertRuleId": data.get("alertRuleId"),
                "anomalyType": data.get("anomalyType"),
            },
        }

    # ── redelivery ───────────────────────────────────

    def redeliver(self, notification, max_attempts=3):
        """Retry the email/push sends of a stored notification that are still pending or failed.

        Uses the address and tokens recorded on the first attempt. Channels that
        were never addressed, already sent, or out of attempts are left alone.
        Updates the stored record and returns {Channel: bool} for the channels retried.
        """
        outcome = {}
        for channel in (Channel.EMAIL, Channel.PUSH):
            state = notification.channel(channel)
            if state.sent or not state.targeted or state.attempts >= max_attempts:
                continue
            if state.delivery_status not in (DeliveryStatus.PENDING, DeliveryStatus.FAILED):
                continue
            try:
                if channel == Channel.EMAIL:
                    if self.email_sender is None:
                        raise ChannelDeliveryFailed("no email sender configured", channel=channel)
                    ok = self._outbound(channel, self.email_sender.send_email, state.email_address,
                                        notification.title, notification.message)
                else:
                    if self.push_sender is None:
                        raise ChannelDeliveryFailed("no push sender configured", channel=channel)
                    ok = self._outbound(channel, self.push_sender.send_push, state.device_tokens,
                                        self._push_payload(notification))
            except ChannelDeliveryFailed as e:
                logger.warning(f"Redelivery of notification {notification.id} via {channel.value} failed: {e}")
                ok = False
            self._mark(state, ok)
            outcome[channel] = ok

        if outcome:
            self.notifications.update_notification_channels(notification)
        return outcome
