from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from calnotify.models.event import Event
from calnotify.models.notification import Notification
from calnotify.services.errors import NotFoundError
from calnotify.services.reminder_generator import ReminderGenerator
from conftest import NOW


@pytest.fixture
def generator(session, metrics):
    return ReminderGenerator(session, metrics=metrics)


def _all(session):
    return session.exec(select(Notification).order_by(Notification.id)).all()


def test_default_lead_times(generator, make_user, make_event):
    make_user()
    event_id = make_event(start_time=datetime(2026, 3, 10, 9, 0), title="Standup")

    reminders = generator.generate(event_id, "user-1")

    assert [r.scheduled_at for r in reminders] == [datetime(2026, 3, 10, 8, 45), datetime(2026, 3, 10, 8, 0)]
    first = reminders[0]
    assert first.kind == "advance_reminder"
    assert first.title == "Standup starting in 15 minutes"
    assert "Standup" in first.body and "15" in first.body
    assert first.details == {"minutes_before": 15, "actions": ["confirmed", "snooze", "ready"]}
    assert first.channels == ["push", "email"]
    assert first.status == "pending"
    assert first.dedupe_key == f"{event_id}:user-1:15"


def test_generation_is_idempotent(generator, session, make_user, make_event, metrics):
    make_user()
    event_id = make_event()

    first = generator.generate(event_id, "user-1")
    second = generator.generate(event_id, "user-1")

    assert len(_all(session)) == 2
    assert [n.id for n in second] == [n.id for n in first]
    assert metrics.get_metrics()["counters"]["reminders_generated_total"] == 2


def test_explicit_lead_times_are_cleaned(generator, make_user, make_event):
    make_user()
    event_id = make_event()

    reminders = generator.generate(event_id, "user-1", lead_times=[30, 0, -5, 30, 5])

    assert [r.details["minutes_before"] for r in reminders] == [5, 30]


def test_lead_times_from_preferences(generator, make_user, make_event):
    make_user(lead_times=[120, 10], sms_enabled=True, email_enabled=False)
    event_id = make_event()

    reminders = generator.generate(event_id, "user-1")

    assert [r.details["minutes_before"] for r in reminders] == [10, 120]
    assert reminders[0].channels == ["push", "sms"]


def test_quiet_hours_shift_reminder_to_window_end(generator, make_user, make_event):
    make_user(quiet_hours_enabled=True, quiet_hours_start="22:00", quiet_hours_end="07:00")
    event_id = make_event(start_time=datetime(2026, 3, 11, 0, 0))

    [reminder] = generator.generate(event_id, "user-1", lead_times=[30])

    assert reminder.scheduled_at == datetime(2026, 3, 11, 7, 0)


def test_quiet_hours_use_user_timezone(generator, make_user, make_event):
    make_user(
        quiet_hours_enabled=True,
        quiet_hours_start="22:00",
        quiet_hours_end="07:00",
        timezone="Asia/Seoul",
    )
    # 13:00Z is 22:00 KST
    event_id = make_event(start_time=datetime(2026, 3, 10, 13, 30))

    [reminder] = generator.generate(event_id, "user-1", lead_times=[15])

    # 07:00 KST next morning
    assert reminder.scheduled_at == datetime(2026, 3, 10, 22, 0)


def test_disabled_quiet_hours_are_ignored(generator, make_user, make_event):
    make_user(quiet_hours_enabled=False)
    event_id = make_event(start_time=datetime(2026, 3, 11, 0, 0))

    [reminder] = generator.generate(event_id, "user-1", lead_times=[30])

    assert reminder.scheduled_at == datetime(2026, 3, 10, 23, 30)


def test_past_lead_times_are_skipped_when_now_is_given(generator, make_user, make_event):
    make_user()
    event_id = make_event(start_time=NOW)

    reminders = generator.generate(event_id, "user-1", now=NOW - timedelta(minutes=30))

    assert [r.details["minutes_before"] for r in reminders] == [15]


def test_no_enabled_channels_means_nothing_to_schedule(generator, session, make_user, make_event):
    make_user(push_enabled=False, email_enabled=False)
    event_id = make_event()

    assert generator.generate(event_id, "user-1") == []
    assert _all(session) == []


def test_missing_event_or_user(generator, make_user, make_event):
    make_user()
    event_id = make_event()

    with pytest.raises(NotFoundError):
        generator.generate(event_id + 100, "user-1")
    with pytest.raises(NotFoundError):
        generator.generate(event_id, "ghost")


def test_event_start_notification(generator, make_user, make_event):
    make_user()
    event_id = make_event(title="Review")

    notification = generator.schedule_event_start(event_id, "user-1")

    assert notification.kind == "event_start"
    assert notification.scheduled_at == NOW
    assert notification.priority == "high"
    assert notification.dedupe_key == f"{event_id}:user-1:start"
    assert generator.schedule_event_start(event_id, "user-1").id == notification.id


def test_event_start_during_quiet_hours_is_skipped(generator, make_user, make_event):
    make_user(quiet_hours_enabled=True, quiet_hours_start="22:00", quiet_hours_end="07:00")
    event_id = make_event(start_time=datetime(2026, 3, 10, 23, 0))

    assert generator.schedule_event_start(event_id, "user-1") is None


def test_schedule_event_notifications(generator, make_user, make_event):
    make_user()
    event_id = make_event()

    notifications = generator.schedule_event_notifications(event_id, "user-1")

    assert [n.kind for n in notifications] == ["advance_reminder", "advance_reminder", "event_start"]


def test_schedule_for_members_skips_unknown_users(generator, make_user, make_event):
    make_user("user-1")
    make_user("user-2", email_enabled=False)
    event_id = make_event()

    notifications = generator.schedule_for_members(event_id, ["user-1", "user-2", "ghost", "user-1"])

    assert sorted({n.user_id for n in notifications}) == ["user-1", "user-2"]
    assert len(notifications) == 6


def test_refresh_replaces_pending_reminders(generator, session, make_user, make_event):
    make_user()
    event_id = make_event(start_time=NOW)
    old = generator.schedule_event_notifications(event_id, "user-1")
    old_ids = {n.id for n in old}

    event = session.get(Event, event_id)
    event.start_time = NOW + timedelta(hours=2)
    session.add(event)
    session.commit()

    new = generator.refresh_for_event(event_id, "user-1")

    assert {n.id for n in new}.isdisjoint(old_ids)
    assert [n.scheduled_at for n in new] == [
        NOW + timedelta(hours=1, minutes=45),
        NOW + timedelta(hours=1),
        NOW + timedelta(hours=2),
    ]
    statuses = {n.id: n.status for n in _all(session)}
    assert all(statuses[i] == "cancelled" for i in old_ids)


def test_refresh_reschedules_lead_times_that_were_already_sent(generator, session, store, make_user, make_event):
    make_user()
    event_id = make_event(start_time=NOW + timedelta(hours=2))
    _, sixty = generator.generate(event_id, "user-1", lead_times=[15, 60])
    assert store.transition(sixty.id, ["pending"], status="sent", sent_at=NOW + timedelta(hours=1))
    sent_id = sixty.id

    event = session.get(Event, event_id)
    event.start_time = NOW + timedelta(days=1)
    session.add(event)
    session.commit()

    new = generator.refresh_for_event(event_id, "user-1", lead_times=[15, 60], now=NOW)

    assert [(n.details["minutes_before"], n.status, n.scheduled_at) for n in new[:2]] == [
        (15, "pending", NOW + timedelta(days=1) - timedelta(minutes=15)),
        (60, "pending", NOW + timedelta(days=1) - timedelta(minutes=60)),
    ]
    assert sent_id not in {n.id for n in new}
    delivered = store.get(sent_id)
    assert delivered.status == "sent"
    assert delivered.dedupe_key is None
