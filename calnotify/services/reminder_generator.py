"""
Advance-Reminder Generator.

Turns an event and a user's notification preferences into scheduled
notification records. Generation is idempotent: each advance reminder
carries a unique dedupe key, so running the generator twice for the same
event and user leaves the existing rows in place.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlmodel import Session, select

from calnotify.config import DEFAULT_MAX_RETRIES
from calnotify.models.event import Event
from calnotify.models.notification import (
    ADVANCE_REMINDER_ACTIONS,
    Notification,
    NotificationKind,
    NotificationPriority,
)
from calnotify.models.user import User
from calnotify.models.user_preference import UserPreference
from calnotify.services.errors import DuplicateNotification, NotFoundError
from calnotify.services.notification_store import NotificationStore
from calnotify.services.quiet_hours import QuietHours
from calnotify.utils.metrics import MetricsCollector, metrics_collector
from calnotify.utils.timeutils import to_utc_naive

logger = logging.getLogger(__name__)


def advance_reminder_key(event_id: int, user_id: str, minutes_before: int) -> str:
    return f"{event_id}:{user_id}:{minutes_before}"


def event_start_key(event_id: int, user_id: str) -> str:
    return f"{event_id}:{user_id}:start"


class ReminderGenerator:
    """Schedules advance reminders and event-start notifications."""

    def __init__(self, session: Session, metrics: Optional[MetricsCollector] = None):
        self.session = session
        self.store = NotificationStore(session)
        self.metrics = metrics or metrics_collector

    def get_preferences(self, user_id: str) -> UserPreference:
        """The user's preference row, or the defaults when none is stored."""
        statement = select(UserPreference).where(UserPreference.user_id == user_id)
        preference = self.session.exec(statement).first()
        return preference or UserPreference(user_id=user_id)

    def _load(self, event_id: int, user_id: str) -> Tuple[Event, UserPreference]:
        event = self.session.get(Event, event_id)
        if not event:
            raise NotFoundError(f"Event {event_id} not found")
        if not self.session.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")
        return event, self.get_preferences(user_id)

    def _create_once(self, dedupe_key: str, **fields) -> Tuple[Notification, bool]:
        """Create a row for ``dedupe_key`` unless one exists; returns (row, created)."""
        try:
            return self.store.create(dedupe_key=dedupe_key, **fields), True
        except DuplicateNotification:
            existing = self.store.get_by_dedupe_key(dedupe_key)
            logger.debug("Notification %s already scheduled; keeping existing row", dedupe_key)
            return existing, False

    def generate(
        self,
        event_id: int,
        user_id: str,
        lead_times: Optional[Iterable[int]] = None,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """
        Create one advance reminder per lead time for ``user_id``.

        Args:
            event_id: Event to remind about
            user_id: User receiving the reminders
            lead_times: Minutes before the start; defaults to the user's preference
            now: When given, lead times that are already past are skipped

        Returns:
            The advance reminder for each scheduled lead time, new or existing

        Raises:
            NotFoundError: If the event or user does not exist
        """
        event, preference = self._load(event_id, user_id)

        channels = preference.enabled_channels()
        if not channels:
            logger.info("User %s has no delivery channels enabled; no reminders for event %s", user_id, event_id)
            return []

        if lead_times is None:
            minutes_list = preference.normalized_lead_times()
        else:
            minutes_list = sorted({int(m) for m in lead_times if int(m) > 0})

        quiet_hours = QuietHours.from_preference(preference)
        start_time = to_utc_naive(event.start_time)
        now = to_utc_naive(now)

        notifications = []
        created = 0
        for minutes_before in minutes_list:
            scheduled_at = start_time - timedelta(minutes=minutes_before)
            if quiet_hours is not None:
                scheduled_at = quiet_hours.shift(scheduled_at)
            if now is not None and scheduled_at < now:
                logger.debug("Skipping %s-minute reminder for event %s: already past", minutes_before, event_id)
                continue

            notification, is_new = self._create_once(
                advance_reminder_key(event.id, user_id, minutes_before),
                user_id=user_id,
                event_id=event.id,
                kind=NotificationKind.ADVANCE_REMINDER.value,
                title=f"{event.title} starting in {minutes_before} minutes"[:200],
                body=f'"{event.title}" starts in {minutes_before} minutes. Confirm, snooze, or let us know you are ready.',
                scheduled_at=scheduled_at,
                channels=channels,
                priority=NotificationPriority.MEDIUM.value,
                max_retries=DEFAULT_MAX_RETRIES,
                details={
                    "minutes_before": minutes_before,
                    "actions": list(ADVANCE_REMINDER_ACTIONS),
                },
            )
            notifications.append(notification)
            created += int(is_new)

        if created:
            self.metrics.reminders_generated(created)
            logger.info("Scheduled %s advance reminders for event %s, user %s", created, event_id, user_id)
        return notifications

    def schedule_event_start(self, event_id: int, user_id: str, now: Optional[datetime] = None) -> Optional[Notification]:
        """Schedule the notification sent when the event starts."""
        event, preference = self._load(event_id, user_id)
        channels = preference.enabled_channels()
        if not channels:
            return None

        start_time = to_utc_naive(event.start_time)
        quiet_hours = QuietHours.from_preference(preference)
        if quiet_hours is not None and quiet_hours.contains(start_time):
            logger.info("Event %s starts during quiet hours of user %s; no start notification", event_id, user_id)
            return None
        now = to_utc_naive(now)
        if now is not None and start_time < now:
            return None

        notification, is_new = self._create_once(
            event_start_key(event.id, user_id),
            user_id=user_id,
            event_id=event.id,
            kind=NotificationKind.EVENT_START.value,
            title=f"{event.title} is starting"[:200],
            body=f'"{event.title}" starts now.',
            scheduled_at=start_time,
            channels=channels,
            priority=NotificationPriority.HIGH.value,
            max_retries=DEFAULT_MAX_RETRIES,
            details={"is_exact_time": True, "can_be_cancelled_by_advance_action": True},
        )
        if is_new:
            self.metrics.reminders_generated(1)
        return notification

    def schedule_event_notifications(
        self,
        event_id: int,
        user_id: str,
        lead_times: Optional[Iterable[int]] = None,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """Advance reminders plus the event-start notification."""
        notifications = self.generate(event_id, user_id, lead_times=lead_times, now=now)
        start_notification = self.schedule_event_start(event_id, user_id, now=now)
        if start_notification is not None:
            notifications.append(start_notification)
        return notifications

    def schedule_for_members(
        self,
        event_id: int,
        user_ids: Iterable[str],
        lead_times: Optional[Iterable[int]] = None,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """Schedule notifications for every member of a group event."""
        if not self.session.get(Event, event_id):
            raise NotFoundError(f"Event {event_id} not found")

        lead_times = list(lead_times) if lead_times is not None else None
        notifications = []
        for user_id in dict.fromkeys(user_ids):
            try:
                notifications.extend(self.schedule_event_notifications(event_id, user_id, lead_times, now))
            except NotFoundError:
                logger.warning("Skipping unknown group member %s for event %s", user_id, event_id)
        return notifications

    def refresh_for_event(
        self,
        event_id: int,
        user_id: str,
        lead_times: Optional[Iterable[int]] = None,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """Replace the pending reminders of an event whose time or title changed."""
        if not self.session.get(Event, event_id):
            raise NotFoundError(f"Event {event_id} not found")

        cancelled = self.store.cancel_pending_for_event(
            event_id,
            user_id=user_id,
            kinds=[NotificationKind.ADVANCE_REMINDER.value, NotificationKind.EVENT_START.value],
        )
        released = self.store.release_dedupe_keys(event_id, user_id)
        logger.info(
            "Cancelled %s pending notifications of event %s before rescheduling (%s older dedupe keys released)",
            cancelled,
            event_id,
            released,
        )
        return self.schedule_event_notifications(event_id, user_id, lead_times, now)
