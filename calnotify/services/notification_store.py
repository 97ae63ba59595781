"""Notification Store.

Persistence for notification records. Status changes go through
``transition`` and ``claim``, which are single conditional UPDATE statements:
they only apply when the row still has the status (and optionally the
version) the caller observed, so concurrent dispatcher workers and user
actions never overwrite each other's transitions.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import ObjectDeletedError
from sqlmodel import Session, col, select

from calnotify.config import DEFAULT_MAX_RETRIES
from calnotify.models.event import Event
from calnotify.models.notification import Notification, NotificationKind, NotificationPriority, NotificationStatus
from calnotify.services.errors import DuplicateNotification, NotFoundError, ValidationError
from calnotify.services.notification_validator import NotificationValidator
from calnotify.utils.timeutils import to_utc_naive, utcnow

logger = logging.getLogger(__name__)

# Failed rows are finished only once their retries are exhausted
FINISHED_STATUSES = [
    NotificationStatus.SENT.value,
    NotificationStatus.ACKNOWLEDGED.value,
    NotificationStatus.CANCELLED.value,
]


def _status_values(statuses: Iterable[Any]) -> List[str]:
    return [s.value if isinstance(s, Enum) else str(s) for s in statuses]


class NotificationStore:
    """Durable CRUD over notification records."""

    def __init__(self, session: Session):
        self.session = session

    # -----------------------------
    # Create
    # -----------------------------
    def create(
        self,
        user_id: str,
        kind: str,
        title: str,
        body: str,
        scheduled_at: Optional[datetime],
        channels: Optional[Iterable[str]],
        event_id: Optional[int] = None,
        priority: str = NotificationPriority.MEDIUM.value,
        max_retries: int = DEFAULT_MAX_RETRIES,
        details: Optional[Dict[str, Any]] = None,
        dedupe_key: Optional[str] = None,
    ) -> Notification:
        """
        Insert a new notification in ``pending`` status.

        Raises:
            ValidationError: If the record is malformed
            NotFoundError: If ``event_id`` does not reference an event
            DuplicateNotification: If ``dedupe_key`` is already taken
        """
        kind = kind.value if isinstance(kind, Enum) else kind
        priority = priority.value if isinstance(priority, Enum) else priority
        channel_list = [c.value if isinstance(c, Enum) else c for c in (channels or [])]

        validation = NotificationValidator.validate_new(
            kind=kind,
            title=title,
            body=body,
            scheduled_at=scheduled_at,
            channels=channel_list,
            priority=priority,
            max_retries=max_retries,
        )
        if not validation["valid"]:
            raise ValidationError(validation["errors"])
        if event_id is not None and self.session.get(Event, event_id) is None:
            raise NotFoundError(f"Event {event_id} not found")

        now = utcnow()
        notification = Notification(
            user_id=user_id,
            event_id=event_id,
            kind=kind,
            title=title.strip(),
            body=body,
            scheduled_at=to_utc_naive(scheduled_at),
            status=NotificationStatus.PENDING.value,
            priority=priority,
            # keep first occurrence order, drop repeats
            channels=list(dict.fromkeys(channel_list)),
            max_retries=int(max_retries),
            details=details or {},
            dedupe_key=dedupe_key,
            created_at=now,
            updated_at=now,
        )

        self.session.add(notification)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if dedupe_key is not None and self.get_by_dedupe_key(dedupe_key) is not None:
                raise DuplicateNotification(f"Notification '{dedupe_key}' already exists") from exc
            raise
        self.session.refresh(notification)
        return notification

    # -----------------------------
    # Reads
    # -----------------------------
    def get(self, notification_id: int) -> Optional[Notification]:
        return self.session.get(Notification, notification_id)

    def get_for_user(self, notification_id: int, user_id: str) -> Optional[Notification]:
        statement = select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
        return self.session.exec(statement).first()

    def get_by_dedupe_key(self, dedupe_key: str) -> Optional[Notification]:
        statement = select(Notification).where(Notification.dedupe_key == dedupe_key)
        return self.session.exec(statement).first()

    def find_due(self, now: datetime) -> List[Notification]:
        """Pending notifications whose scheduled time has passed, earliest first."""
        now = to_utc_naive(now)
        statement = (
            select(Notification)
            .where(
                Notification.status == NotificationStatus.PENDING.value,
                Notification.scheduled_at <= now,
            )
            .order_by(col(Notification.scheduled_at).asc(), col(Notification.id).asc())
        )
        return list(self.session.exec(statement).all())

    def find_retryable(self, now: datetime) -> List[Notification]:
        """Failed notifications that still have retries left, earliest first."""
        now = to_utc_naive(now)
        statement = (
            select(Notification)
            .where(
                Notification.status == NotificationStatus.FAILED.value,
                col(Notification.retry_count) < col(Notification.max_retries),
                Notification.scheduled_at <= now,
            )
            .order_by(
                col(Notification.scheduled_at).asc(),
                col(Notification.retry_count).asc(),
                col(Notification.id).asc(),
            )
        )
        return list(self.session.exec(statement).all())

    def list_for_user(
        self,
        user_id: str,
        kind: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Notification], int]:
        """List a user's notifications, newest first, with the unpaginated total."""
        conditions = [Notification.user_id == user_id]
        if kind:
            conditions.append(Notification.kind == kind)
        if status:
            conditions.append(Notification.status == status)
        if priority:
            conditions.append(Notification.priority == priority)

        total = self.session.exec(
            select(func.count()).select_from(Notification).where(*conditions)
        ).one()
        statement = (
            select(Notification)
            .where(*conditions)
            .order_by(col(Notification.created_at).desc(), col(Notification.id).desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(statement).all()), int(total)

    def count_unacknowledged(self, user_id: str) -> int:
        """Delivered notifications the user has not responded to yet."""
        statement = select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            Notification.status == NotificationStatus.SENT.value,
        )
        return int(self.session.exec(statement).one())

    def stats_for_user(self, user_id: str, since: datetime) -> List[Dict[str, Any]]:
        statement = (
            select(Notification.status, Notification.kind, func.count())
            .where(
                Notification.user_id == user_id,
                Notification.created_at >= to_utc_naive(since),
            )
            .group_by(Notification.status, Notification.kind)
        )
        return [
            {"status": status, "kind": kind, "count": int(count)}
            for status, kind, count in self.session.exec(statement).all()
        ]

    # -----------------------------
    # Writes
    # -----------------------------
    def save(self, record: Notification) -> Notification:
        """Persist a full-record update of non-status fields."""
        record.updated_at = utcnow()
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def transition(
        self,
        notification_id: int,
        expected_statuses: Iterable[Any],
        expected_version: Optional[int] = None,
        **values: Any,
    ) -> bool:
        """
        Apply ``values`` only if the row is still in one of ``expected_statuses``.

        Args:
            notification_id: Row to update
            expected_statuses: Statuses the caller observed
            expected_version: Version the caller observed, if it must match too
            **values: Column values to write

        Returns:
            True if the row was updated, False if another writer got there first
        """
        statement = update(Notification).where(
            col(Notification.id) == notification_id,
            col(Notification.status).in_(_status_values(expected_statuses)),
        )
        if expected_version is not None:
            statement = statement.where(col(Notification.version) == expected_version)

        values.setdefault("updated_at", utcnow())
        statement = statement.values(version=col(Notification.version) + 1, **values)
        result = self.session.exec(statement.execution_options(synchronize_session=False))
        self.session.commit()
        return result.rowcount == 1

    def claim(
        self,
        record: Notification,
        worker_id: str,
        now: datetime,
        lease_seconds: float,
        observed_status: Optional[str] = None,
        observed_version: Optional[int] = None,
    ) -> Optional[int]:
        """
        Take the dispatch lease on ``record`` before delivery.

        The write only succeeds if the row still has the status and version
        observed when it was read, is still dispatchable, and no other worker
        holds a live lease. Pass ``observed_status``/``observed_version`` when
        ``record`` may have been reloaded since it was read.

        Returns:
            The version written by the claim, or None if the claim was lost
        """
        now = to_utc_naive(now)
        notification_id = record.id
        if observed_status is None:
            observed_status = record.status
        if observed_version is None:
            observed_version = record.version
        if observed_status not in (NotificationStatus.PENDING.value, NotificationStatus.FAILED.value):
            return None

        statement = (
            update(Notification)
            .where(
                col(Notification.id) == notification_id,
                col(Notification.status) == observed_status,
                col(Notification.version) == observed_version,
                or_(
                    col(Notification.status) == NotificationStatus.PENDING.value,
                    col(Notification.retry_count) < col(Notification.max_retries),
                ),
                or_(
                    col(Notification.claimed_until).is_(None),
                    col(Notification.claimed_until) <= now,
                ),
            )
            .values(
                version=observed_version + 1,
                claimed_by=worker_id,
                claimed_until=now + timedelta(seconds=lease_seconds),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(statement)
        self.session.commit()
        if result.rowcount != 1:
            return None

        try:
            self.session.refresh(record)
        except ObjectDeletedError:
            logger.debug("Notification %s was deleted right after it was claimed", notification_id)
            return None
        return observed_version + 1

    def cancel(self, notification_id: int) -> bool:
        """pending|failed -> cancelled. Releases the advance-reminder dedupe key."""
        return self.transition(
            notification_id,
            [NotificationStatus.PENDING, NotificationStatus.FAILED],
            status=NotificationStatus.CANCELLED.value,
            dedupe_key=None,
            claimed_by=None,
            claimed_until=None,
        )

    def cancel_pending_for_event(
        self,
        event_id: int,
        user_id: Optional[str] = None,
        kinds: Optional[Iterable[str]] = None,
    ) -> int:
        """Cancel every pending notification of an event; returns the number cancelled."""
        statement = update(Notification).where(
            col(Notification.event_id) == event_id,
            col(Notification.status) == NotificationStatus.PENDING.value,
        )
        if user_id is not None:
            statement = statement.where(col(Notification.user_id) == user_id)
        if kinds:
            statement = statement.where(col(Notification.kind).in_(_status_values(kinds)))

        statement = statement.values(
            status=NotificationStatus.CANCELLED.value,
            version=col(Notification.version) + 1,
            dedupe_key=None,
            claimed_by=None,
            claimed_until=None,
            updated_at=utcnow(),
        ).execution_options(synchronize_session=False)
        result = self.session.exec(statement)
        self.session.commit()
        return int(result.rowcount or 0)

    def release_dedupe_keys(self, event_id: int, user_id: str) -> int:
        """
        Free the dedupe keys held by an event's sent, acknowledged or failed reminders.

        Keys only need to guard scheduled rows, so an event that moved can
        get fresh reminders for the same lead times. Status and version are
        left alone.
        """
        statement = update(Notification).where(
            col(Notification.event_id) == event_id,
            col(Notification.user_id) == user_id,
            col(Notification.kind).in_(
                [NotificationKind.ADVANCE_REMINDER.value, NotificationKind.EVENT_START.value]
            ),
            col(Notification.status) != NotificationStatus.PENDING.value,
            col(Notification.dedupe_key).is_not(None),
        ).values(dedupe_key=None, updated_at=utcnow()).execution_options(synchronize_session=False)
        result = self.session.exec(statement)
        self.session.commit()
        return int(result.rowcount or 0)

    def acknowledge_sent_for_user(self, user_id: str, now: datetime, user_action: Optional[str] = None) -> int:
        """sent -> acknowledged for every delivered notification of a user."""
        statement = update(Notification).where(
            col(Notification.user_id) == user_id,
            col(Notification.status) == NotificationStatus.SENT.value,
        ).values(
            status=NotificationStatus.ACKNOWLEDGED.value,
            acknowledged_at=to_utc_naive(now),
            user_action=user_action,
            version=col(Notification.version) + 1,
            updated_at=utcnow(),
        ).execution_options(synchronize_session=False)
        result = self.session.exec(statement)
        self.session.commit()
        return int(result.rowcount or 0)

    def delete(self, notification_id: int, user_id: str) -> bool:
        """Administrative delete; the dispatcher never deletes records."""
        notification = self.get_for_user(notification_id, user_id)
        if not notification:
            return False
        self.session.delete(notification)
        self.session.commit()
        return True

    def purge_finished(self, older_than: datetime) -> int:
        """Delete finished notifications created before ``older_than``."""
        statement = delete(Notification).where(
            or_(
                col(Notification.status).in_(FINISHED_STATUSES),
                (col(Notification.status) == NotificationStatus.FAILED.value)
                & (col(Notification.retry_count) >= col(Notification.max_retries)),
            ),
            col(Notification.created_at) < to_utc_naive(older_than),
        ).execution_options(synchronize_session=False)
        result = self.session.exec(statement)
        self.session.commit()
        deleted = int(result.rowcount or 0)
        logger.info("Purged %s finished notifications older than %s", deleted, older_than.isoformat())
        return deleted
