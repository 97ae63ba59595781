"""Notification model for SQLModel."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, ForeignKey, Index, Integer, String, Text
from sqlmodel import Field, SQLModel

from calnotify.utils.timeutils import utcnow


class NotificationKind(str, Enum):
    ADVANCE_REMINDER = "advance_reminder"
    EVENT_START = "event_start"
    EVENT_REMINDER = "event_reminder"
    EVENT_INVITATION = "event_invitation"
    EVENT_UPDATE = "event_update"
    EVENT_CANCELLATION = "event_cancellation"
    SNOOZE_REMINDER = "snooze_reminder"
    SYSTEM_NOTIFICATION = "system_notification"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DeliveryChannel(str, Enum):
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"
    IN_APP = "in_app"


class UserAction(str, Enum):
    CONFIRMED = "confirmed"
    SNOOZE = "snooze"
    READY = "ready"
    DISMISSED = "dismissed"


ADVANCE_REMINDER_ACTIONS = [
    UserAction.CONFIRMED.value,
    UserAction.SNOOZE.value,
    UserAction.READY.value,
]


class Notification(SQLModel, table=True):
    """A scheduled reminder addressed to one user.

    ``version`` is bumped on every status transition and is what the
    dispatcher's conditional writes compare against. ``claimed_by`` and
    ``claimed_until`` form the dispatch lease; they are bookkeeping, not a
    status.
    """

    __table_args__ = (
        Index("ix_notification_status_scheduled_at", "status", "scheduled_at"),
        Index("ix_notification_user_event_kind", "user_id", "event_id", "kind"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=100, index=True)
    event_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("event.id", ondelete="CASCADE"), nullable=True, index=True),
    )
    kind: str = Field(max_length=32)
    title: str = Field(max_length=200)
    body: str = Field(sa_column=Column(Text, nullable=False))
    scheduled_at: datetime
    status: str = Field(default=NotificationStatus.PENDING.value, max_length=20)
    priority: str = Field(default=NotificationPriority.MEDIUM.value, max_length=20)
    channels: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    user_action: Optional[str] = Field(default=None, max_length=20)

    retry_count: int = Field(default=0)
    max_retries: int = Field(default=3)
    last_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    sent_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    # "metadata" is reserved on declarative classes, so the attribute is renamed
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=True))
    delivery_receipt: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # "<event_id>:<user_id>:<minutes_before>" for advance reminders, NULL otherwise
    dedupe_key: Optional[str] = Field(
        default=None,
        sa_column=Column(String(200), unique=True, nullable=True),
    )
    version: int = Field(default=0)
    claimed_by: Optional[str] = Field(default=None, max_length=100)
    claimed_until: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def failure_event(self) -> Dict[str, Any]:
        """Payload emitted when retries are exhausted."""
        return {
            "notification_id": self.id,
            "user_id": self.user_id,
            "event_id": self.event_id,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }
