"""Dataclasses for persisted user notifications."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from models.enums import (
    Channel, DeliveryStatus, NotificationCategory, NotificationPriority,
    NotificationStatus, NotificationType,
)

NOTIFICATION_TTL_DAYS = 30


@dataclass
class ChannelState:
    sent: bool = False
    sent_at: Optional[datetime] = None
    delivery_status: Optional[DeliveryStatus] = None
    email_address: Optional[str] = None
    device_tokens: list = field(default_factory=list)
    attempts: int = 0

    @property
    def targeted(self):
        """True once an outbound send was addressed to this channel."""
        return bool(self.email_address or self.device_tokens)

    def mark_sent(self, at: datetime, delivery_status: Optional[DeliveryStatus] = None):
        self.sent = True
        self.sent_at = at
        if delivery_status is not None:
            self.delivery_status = delivery_status

    def to_dict(self):
        d = {
            "sent": self.sent,
            "sentAt": self.sent_at.isoformat() if self.sent_at else None,
        }
        if self.delivery_status is not None:
            d["deliveryStatus"] = self.delivery_status.value
        if self.email_address:
            d["emailAddress"] = self.email_address
        if self.device_tokens:
            d["deviceTokens"] = list(self.device_tokens)
        if self.attempts:
            d["attempts"] = self.attempts
        return d

    @classmethod
    def from_dict(cls, d):
        d = d or {}
        sent_at = d.get("sentAt")
        status = d.get("deliveryStatus")
        return cls(
            sent=bool(d.get("sent", False)),
            sent_at=datetime.fromisoformat(sent_at) if sent_at else None,
            delivery_status=DeliveryStatus(status) if status else None,
            email_address=d.get("emailAddress"),
            device_tokens=list(d.get("deviceTokens", [])),
            attempts=int(d.get("attempts", 0)),
        )


def _default_channels():
    return {
        Channel.IN_APP: ChannelState(),
        Channel.EMAIL: ChannelState(delivery_status=DeliveryStatus.PENDING),
        Channel.PUSH: ChannelState(delivery_status=DeliveryStatus.PENDING),
    }


@dataclass
class Notification:
    user_id: str
    title: str
    message: str
    pet_id: Optional[str] = None
    id: Optional[int] = None
    type: NotificationType = NotificationType.ALERT
    category: NotificationCategory = NotificationCategory.GENERAL
    data: dict = field(default_factory=dict)
    status: NotificationStatus = NotificationStatus.UNREAD
    priority: NotificationPriority = NotificationPriority.NORMAL
    channels: dict = field(default_factory=_default_channels)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        if self.expires_at is None:
            self.expires_at = self.created_at + timedelta(days=NOTIFICATION_TTL_DAYS)

    def channel(self, channel: Channel) -> ChannelState:
        return self.channels[channel]

    def channels_to_dict(self):
        return {c.value: state.to_dict() for c, state in self.channels.items()}

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "petId": self.pet_id,
            "type": self.type.value,
            "category": self.category.value,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "status": self.status.value,
            "priority": self.priority.value,
            "channels": self.channels_to_dict(),
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass
class MaintenanceRunResult:
    """Outcome of one notification maintenance pass."""
    expired_deleted: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    errors: list = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def to_dict(self):
        return {
            "expiredDeleted": self.expired_deleted,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "errors": list(self.errors),
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }
