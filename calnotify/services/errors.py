"""Exceptions raised by the notification engine."""
from typing import List, Optional


class NotificationError(Exception):
    """Base class for notification engine errors."""


class ValidationError(NotificationError):
    """A notification record is malformed and was not stored."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class NotFoundError(NotificationError):
    """A referenced notification, event or user does not exist."""


class InvalidTransition(NotificationError):
    """The requested status change is not allowed from the current status."""

    def __init__(self, notification_id: Optional[int], current: str, target: str):
        self.notification_id = notification_id
        self.current = current
        self.target = target
        super().__init__(f"Notification {notification_id} cannot move from '{current}' to '{target}'")


class DuplicateNotification(NotificationError):
    """An advance reminder for the same event, user and lead time already exists."""


class DeliveryFailure(NotificationError):
    """Transient delivery failure; retried while retries remain."""


class PermanentDeliveryFailure(DeliveryFailure):
    """Delivery can never succeed for this record; retries are exhausted at once."""


class MalformedNotificationError(PermanentDeliveryFailure):
    """The channel sender was called with input it cannot deliver."""


class ConcurrencyConflict(NotificationError):
    """Another writer changed the record first. Handled inside the dispatcher, never surfaced."""
