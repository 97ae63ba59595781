"""
Notification Actions.

What users do with their notifications: acknowledge them (optionally
snoozing, or marking themselves ready so the event-start notification is
dropped), cancel them, and cancel whole events.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from sqlmodel import Session

from calnotify.config import DEFAULT_MAX_RETRIES, DEFAULT_SNOOZE_MINUTES
from calnotify.models.event import Event
from calnotify.models.notification import (
    ADVANCE_REMINDER_ACTIONS,
    Notification,
    NotificationKind,
    NotificationPriority,
    NotificationStatus,
    UserAction,
)
from calnotify.models.user import User
from calnotify.services.errors import InvalidTransition, NotFoundError, ValidationError
from calnotify.services.notification_store import NotificationStore
from calnotify.services.reminder_generator import ReminderGenerator
from calnotify.utils.timeutils import to_utc_naive, utcnow

logger = logging.getLogger(__name__)

VALID_ACTIONS = {action.value for action in UserAction}

# Kinds that offer confirm / snooze / ready
ACTIONABLE_KINDS = (NotificationKind.ADVANCE_REMINDER.value, NotificationKind.SNOOZE_REMINDER.value)

ACTION_MESSAGES = {
    UserAction.CONFIRMED.value: '"{title}": the start notification will still be sent.',
    UserAction.SNOOZE.value: '"{title}": we will remind you again in {minutes} minutes.',
    UserAction.READY.value: '"{title}": you are ready, so the start notification was cancelled.',
    UserAction.DISMISSED.value: '"{title}": notification dismissed.',
}


class NotificationActions:
    """User-driven transitions on notification records."""

    def __init__(self, session: Session):
        self.session = session
        self.store = NotificationStore(session)

    def _get_owned(self, notification_id: int, user_id: str) -> Notification:
        notification = self.store.get_for_user(notification_id, user_id)
        if not notification:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def acknowledge(
        self,
        notification_id: int,
        user_id: str,
        action: str = UserAction.CONFIRMED.value,
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Acknowledge a delivered notification with the user's response.

        Args:
            notification_id: Notification being answered
            user_id: Owner of the notification
            action: One of confirmed, snooze, ready, dismissed
            snooze_minutes: Delay of the follow-up reminder for ``snooze``
            now: Acknowledgement time; defaults to the current UTC time

        Returns:
            Dict with the acknowledged notification, the action applied, the
            snooze follow-up (if any) and a user-facing message

        Raises:
            NotFoundError: If the notification does not belong to the user
            ValidationError: If the action or snooze delay is invalid
            InvalidTransition: If the notification is not in ``sent``
        """
        action = action.value if isinstance(action, UserAction) else action
        if action not in VALID_ACTIONS:
            raise ValidationError([f"Action must be one of: {', '.join(sorted(VALID_ACTIONS))}"])
        if action == UserAction.SNOOZE.value and (snooze_minutes is None or snooze_minutes <= 0):
            raise ValidationError(["snooze_minutes must be greater than zero"])

        now = to_utc_naive(now) if now is not None else utcnow()
        notification = self._get_owned(notification_id, user_id)
        kind = notification.kind
        if kind in ACTIONABLE_KINDS and action not in ADVANCE_REMINDER_ACTIONS:
            action = UserAction.DISMISSED.value

        acknowledged = self.store.transition(
            notification_id,
            [NotificationStatus.SENT],
            status=NotificationStatus.ACKNOWLEDGED.value,
            acknowledged_at=now,
            user_action=action,
        )
        if not acknowledged:
            self.session.refresh(notification)
            raise InvalidTransition(notification_id, notification.status, NotificationStatus.ACKNOWLEDGED.value)

        self.session.refresh(notification)
        event_title = self._event_title(notification)
        follow_up = None
        if kind in ACTIONABLE_KINDS and action == UserAction.SNOOZE.value:
            try:
                follow_up = self._snooze(notification, event_title, snooze_minutes, now)
            except Exception:
                # Without the follow-up the snooze did not happen; leave the reminder unanswered
                self.session.rollback()
                self.store.transition(
                    notification_id,
                    [NotificationStatus.ACKNOWLEDGED],
                    status=NotificationStatus.SENT.value,
                    acknowledged_at=None,
                    user_action=None,
                )
                logger.exception("Could not snooze notification %s; acknowledgement reverted", notification_id)
                raise
        elif kind in ACTIONABLE_KINDS and action == UserAction.READY.value and notification.event_id is not None:
            cancelled = self.store.cancel_pending_for_event(
                notification.event_id,
                user_id=user_id,
                kinds=[NotificationKind.EVENT_START.value],
            )
            logger.info("User %s is ready for event %s; cancelled %s start notifications", user_id, notification.event_id, cancelled)
            self.session.refresh(notification)

        return {
            "notification": notification,
            "action": action,
            "follow_up": follow_up,
            "message": ACTION_MESSAGES[action].format(title=event_title, minutes=snooze_minutes),
        }

    def _event_title(self, notification: Notification) -> str:
        if notification.event_id is not None:
            event = self.session.get(Event, notification.event_id)
            if event:
                return event.title
        return notification.title

    def _snooze(self, notification: Notification, event_title: str, snooze_minutes: int, now: datetime) -> Notification:
        details = notification.details or {}
        snooze_count = int(details.get("snooze_count", 0)) + 1
        follow_up = self.store.create(
            user_id=notification.user_id,
            event_id=notification.event_id,
            kind=NotificationKind.SNOOZE_REMINDER.value,
            title=f"{event_title} reminder"[:200],
            body=f'"{event_title}" is starting soon.',
            scheduled_at=now + timedelta(minutes=snooze_minutes),
            channels=list(notification.channels),
            priority=notification.priority,
            max_retries=notification.max_retries,
            details={
                "original_notification_id": notification.id,
                "snooze_count": snooze_count,
                "actions": list(ADVANCE_REMINDER_ACTIONS),
            },
        )
        logger.info("Snoozed notification %s for %s minutes (snooze #%s)", notification.id, snooze_minutes, snooze_count)
        return follow_up

    def acknowledge_all(self, user_id: str, now: Optional[datetime] = None) -> int:
        now = to_utc_naive(now) if now is not None else utcnow()
        return self.store.acknowledge_sent_for_user(user_id, now, user_action=UserAction.DISMISSED.value)

    def cancel(self, notification_id: int, user_id: str) -> Notification:
        """
        Cancel a pending or failed notification.

        Raises:
            NotFoundError: If the notification does not belong to the user
            InvalidTransition: If it was already sent, acknowledged or cancelled
        """
        notification = self._get_owned(notification_id, user_id)
        if not self.store.cancel(notification_id):
            self.session.refresh(notification)
            raise InvalidTransition(notification_id, notification.status, NotificationStatus.CANCELLED.value)
        self.session.refresh(notification)
        return notification

    def cancel_event(
        self,
        event_id: int,
        participant_ids: Iterable[str],
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Cancel an event's pending notifications and tell every participant.

        Returns:
            Dict with the number of cancelled notifications and the
            cancellation notices created
        """
        event = self.session.get(Event, event_id)
        if not event:
            raise NotFoundError(f"Event {event_id} not found")
        event_title = event.title
        now = to_utc_naive(now) if now is not None else utcnow()
        generator = ReminderGenerator(self.session)

        cancelled = 0
        notices = []
        for user_id in dict.fromkeys(participant_ids):
            if not self.session.get(User, user_id):
                logger.warning("Skipping unknown participant %s of event %s", user_id, event_id)
                continue
            cancelled += self.store.cancel_pending_for_event(event_id, user_id=user_id)

            channels = generator.get_preferences(user_id).enabled_channels()
            if not channels:
                continue
            notices.append(
                self.store.create(
                    user_id=user_id,
                    event_id=event_id,
                    kind=NotificationKind.EVENT_CANCELLATION.value,
                    title=f"{event_title} was cancelled"[:200],
                    body=f'"{event_title}" has been cancelled.',
                    scheduled_at=now,
                    channels=channels,
                    priority=NotificationPriority.HIGH.value,
                    max_retries=DEFAULT_MAX_RETRIES,
                    details={"cancelled_at": now.isoformat()},
                )
            )

        logger.info("Event %s cancelled: %s pending notifications cancelled, %s notices created", event_id, cancelled, len(notices))
        return {"cancelled": cancelled, "notifications": notices}
