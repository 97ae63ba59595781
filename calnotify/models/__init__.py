"""SQLModel tables used by the notification engine."""
from calnotify.models.event import Event
from calnotify.models.notification import (
    ADVANCE_REMINDER_ACTIONS,
    DeliveryChannel,
    Notification,
    NotificationKind,
    NotificationPriority,
    NotificationStatus,
    UserAction,
)
from calnotify.models.user import User
from calnotify.models.user_preference import DEFAULT_LEAD_TIMES, UserPreference

__all__ = [
    "ADVANCE_REMINDER_ACTIONS",
    "DEFAULT_LEAD_TIMES",
    "DeliveryChannel",
    "Event",
    "Notification",
    "NotificationKind",
    "NotificationPriority",
    "NotificationStatus",
    "User",
    "UserAction",
    "UserPreference",
]
