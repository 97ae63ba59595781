"""
Dispatch worker.

Runs a dispatch cycle every ``DISPATCH_INTERVAL_SECONDS`` and purges
finished notifications once a day. Start it with ``python -m calnotify.worker``;
several workers may run against the same database.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from calnotify.config import DISPATCH_INTERVAL_SECONDS, LOG_LEVEL, NOTIFICATION_RETENTION_DAYS
from calnotify.db.config import engine
from calnotify.db.init import init_db
from calnotify.services.dispatcher import DispatchSummary, NotificationDispatcher
from calnotify.services.notification_store import NotificationStore
from calnotify.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

PURGE_INTERVAL = timedelta(days=1)


class DispatchWorker:
    """Drives ``run_once`` on a fixed interval."""

    def __init__(self, bind=None, interval: float = DISPATCH_INTERVAL_SECONDS, **dispatcher_options):
        self.bind = bind if bind is not None else engine
        self.interval = interval
        self.dispatcher_options = dispatcher_options
        self.last_purge: Optional[datetime] = None
        self._stop = asyncio.Event()

    async def tick(self, now: Optional[datetime] = None) -> DispatchSummary:
        """One dispatch cycle, plus the daily purge when it is due."""
        now = now or utcnow()
        with Session(self.bind) as session:
            summary = await NotificationDispatcher(session, **self.dispatcher_options).run_once(now)

            if self.last_purge is None or now - self.last_purge >= PURGE_INTERVAL:
                NotificationStore(session).purge_finished(now - timedelta(days=NOTIFICATION_RETENTION_DAYS))
                self.last_purge = now
        return summary

    async def run(self):
        logger.info("Dispatch worker started (interval %ss)", self.interval)
        while not self._stop.is_set():
            try:
                await self.tick()
            except SQLAlchemyError:
                # The database may come back; try again next interval
                logger.exception("Dispatch cycle aborted by a database error")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Dispatch worker stopped")

    def stop(self):
        self._stop.set()


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_db()
    worker = DispatchWorker()
    try:
        asyncio.run(worker.run())
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")


if __name__ == "__main__":
    main()
