from datetime import timedelta

import pytest

from calnotify.services.errors import InvalidTransition, NotFoundError, ValidationError
from calnotify.services.notification_actions import NotificationActions
from calnotify.services.reminder_generator import ReminderGenerator
from conftest import NOW


@pytest.fixture
def actions(session):
    return NotificationActions(session)


@pytest.fixture
def scheduled(session, make_user, make_event):
    """An event with two advance reminders and a start notification for user-1."""
    make_user()
    event_id = make_event(title="Planning", start_time=NOW + timedelta(hours=2))
    notifications = ReminderGenerator(session).schedule_event_notifications(event_id, "user-1")
    return event_id, notifications


def test_acknowledge_confirmed(actions, make_notification, mark_sent, store):
    notification = mark_sent(make_notification())

    result = actions.acknowledge(notification.id, "user-1", now=NOW + timedelta(minutes=1))

    acknowledged = result["notification"]
    assert acknowledged.status == "acknowledged"
    assert acknowledged.user_action == "confirmed"
    assert acknowledged.acknowledged_at == NOW + timedelta(minutes=1)
    assert acknowledged.sent_at == NOW
    assert result["follow_up"] is None
    assert store.count_unacknowledged("user-1") == 0


def test_acknowledge_requires_sent_status(actions, make_notification):
    notification = make_notification()

    with pytest.raises(InvalidTransition) as exc_info:
        actions.acknowledge(notification.id, "user-1")

    assert exc_info.value.current == "pending"


def test_acknowledge_other_users_notification(actions, make_notification, mark_sent):
    notification = mark_sent(make_notification())

    with pytest.raises(NotFoundError):
        actions.acknowledge(notification.id, "intruder")


def test_acknowledge_rejects_unknown_action(actions, make_notification, mark_sent):
    notification = mark_sent(make_notification())

    with pytest.raises(ValidationError):
        actions.acknowledge(notification.id, "user-1", action="maybe")


def test_snooze_creates_follow_up(actions, scheduled, mark_sent):
    event_id, notifications = scheduled
    reminder = mark_sent(notifications[0])
    now = NOW + timedelta(hours=1, minutes=45)

    result = actions.acknowledge(reminder.id, "user-1", action="snooze", snooze_minutes=10, now=now)

    follow_up = result["follow_up"]
    assert result["action"] == "snooze"
    assert follow_up.kind == "snooze_reminder"
    assert follow_up.event_id == event_id
    assert follow_up.scheduled_at == now + timedelta(minutes=10)
    assert follow_up.details["original_notification_id"] == reminder.id
    assert follow_up.details["snooze_count"] == 1
    assert follow_up.channels == reminder.channels
    assert "Planning" in follow_up.title


def test_failed_snooze_leaves_reminder_unanswered(actions, scheduled, mark_sent, store, monkeypatch):
    _, notifications = scheduled
    reminder = mark_sent(notifications[0])

    def refuse(**fields):
        raise ValidationError(["Title is required"])

    monkeypatch.setattr(actions.store, "create", refuse)

    with pytest.raises(ValidationError):
        actions.acknowledge(reminder.id, "user-1", action="snooze", now=NOW)

    store.session.refresh(reminder)
    assert reminder.status == "sent"
    assert reminder.acknowledged_at is None
    assert reminder.user_action is None
    assert store.count_unacknowledged("user-1") == 1


def test_snoozing_a_snooze_counts_up(actions, scheduled, mark_sent):
    _, notifications = scheduled
    first = actions.acknowledge(mark_sent(notifications[0]).id, "user-1", action="snooze", now=NOW)["follow_up"]

    second = actions.acknowledge(mark_sent(first).id, "user-1", action="snooze", now=NOW)["follow_up"]

    assert second.details["snooze_count"] == 2
    assert second.details["original_notification_id"] == first.id


def test_ready_cancels_pending_event_start(actions, scheduled, mark_sent, store):
    _, notifications = scheduled
    reminder = mark_sent(notifications[0])
    start = notifications[-1]

    result = actions.acknowledge(reminder.id, "user-1", action="ready")

    store.session.refresh(start)
    assert start.kind == "event_start"
    assert start.status == "cancelled"
    assert result["notification"].user_action == "ready"
    assert "cancelled" in result["message"]
    # The other advance reminder is untouched
    store.session.refresh(notifications[1])
    assert notifications[1].status == "pending"


def test_advance_actions_on_plain_notifications_do_not_cascade(actions, scheduled, make_notification, mark_sent, store):
    event_id, notifications = scheduled
    update = mark_sent(make_notification(event_id=event_id, kind="event_update"))

    result = actions.acknowledge(update.id, "user-1", action="ready")

    store.session.refresh(notifications[-1])
    assert result["notification"].user_action == "ready"
    assert notifications[-1].status == "pending"


def test_acknowledge_all(actions, make_notification, mark_sent):
    mark_sent(make_notification())
    mark_sent(make_notification())
    make_notification()

    assert actions.acknowledge_all("user-1", now=NOW) == 2
    assert actions.acknowledge_all("user-1", now=NOW) == 0


def test_cancel(actions, make_notification, mark_sent):
    pending = make_notification()
    sent = mark_sent(make_notification())

    assert actions.cancel(pending.id, "user-1").status == "cancelled"
    with pytest.raises(InvalidTransition):
        actions.cancel(sent.id, "user-1")
    with pytest.raises(NotFoundError):
        actions.cancel(pending.id, "intruder")


def test_cancel_event_notifies_participants(actions, scheduled, make_user, store):
    event_id, notifications = scheduled
    make_user("user-2", push_enabled=False, email_enabled=False)
    make_user("user-3", sms_enabled=True)

    result = actions.cancel_event(event_id, ["user-1", "user-2", "user-3", "ghost"], now=NOW)

    assert result["cancelled"] == 3
    notices = result["notifications"]
    assert [n.user_id for n in notices] == ["user-1", "user-3"]
    assert all(n.kind == "event_cancellation" for n in notices)
    assert all(n.priority == "high" and n.scheduled_at == NOW for n in notices)
    assert notices[1].channels == ["push", "email", "sms"]
    for notification in notifications:
        store.session.refresh(notification)
        assert notification.status == "cancelled"


def test_cancel_unknown_event(actions):
    with pytest.raises(NotFoundError):
        actions.cancel_event(404, ["user-1"])
