import asyncio
from datetime import timedelta

import pytest

from calnotify.models.notification import NotificationStatus
from calnotify.worker import DispatchWorker
from conftest import NOW


@pytest.mark.asyncio
async def test_tick_dispatches_and_purges(engine, store, sender, publisher, metrics, make_notification, mark_sent):
    due = make_notification()
    old = mark_sent(make_notification(scheduled_at=NOW - timedelta(days=60)))
    due_id, old_id = due.id, old.id
    store.transition(old_id, [NotificationStatus.SENT], created_at=NOW - timedelta(days=60))
    worker = DispatchWorker(engine, interval=0.01, sender=sender, publisher=publisher, metrics=metrics)

    summary = await worker.tick(NOW)

    assert summary.sent == 1
    # The purge ran in the worker's session; drop this session's stale copies
    store.session.expunge_all()
    assert store.get(due_id).status == "sent"
    assert store.get(old_id) is None
    assert worker.last_purge == NOW


@pytest.mark.asyncio
async def test_purge_runs_once_a_day(engine, sender, publisher, metrics):
    worker = DispatchWorker(engine, sender=sender, publisher=publisher, metrics=metrics)

    await worker.tick(NOW)
    await worker.tick(NOW + timedelta(hours=1))
    assert worker.last_purge == NOW

    await worker.tick(NOW + timedelta(days=1))
    assert worker.last_purge == NOW + timedelta(days=1)


@pytest.mark.asyncio
async def test_run_stops(engine, sender, publisher, metrics):
    worker = DispatchWorker(engine, interval=60, sender=sender, publisher=publisher, metrics=metrics)

    task = asyncio.create_task(worker.run())
    await asyncio.sleep(0.05)
    worker.stop()
    await asyncio.wait_for(task, timeout=1)

    assert metrics.get_metrics()["counters"]["dispatch_cycles_total"] == 1
