"""
Notification Dispatcher.

Periodically invoked to deliver due notifications and retry failed ones.
Several dispatchers may run against the same database; each record is
claimed with a conditional write before it is sent, so only one of them
delivers it.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm.exc import ObjectDeletedError
from sqlmodel import Session

from calnotify.config import CHANNEL_SEND_TIMEOUT_SECONDS, CLAIM_LEASE_MARGIN_SECONDS, WORKER_ID
from calnotify.dapr.client import DaprEventPublisher, dapr_publisher
from calnotify.models.notification import Notification, NotificationStatus
from calnotify.providers.channel_sender import ChannelSender
from calnotify.services.errors import ConcurrencyConflict, DeliveryFailure, PermanentDeliveryFailure
from calnotify.services.notification_store import NotificationStore
from calnotify.services.retry_policy import DeliveryOutcome, decide
from calnotify.utils.logger import StructuredLogger
from calnotify.utils.metrics import MetricsCollector, metrics_collector
from calnotify.utils.timeutils import to_utc_naive, utcnow

logger = logging.getLogger(__name__)
dispatch_logger = StructuredLogger("calnotify.dispatch")


@dataclass
class DispatchSummary:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    exhausted: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _dispatch_order(record: Notification) -> Tuple[int, datetime, int, int]:
    # Due records go before retries
    is_retry = 0 if record.status == NotificationStatus.PENDING.value else 1
    return (is_retry, record.scheduled_at, record.retry_count, record.id)


class NotificationDispatcher:
    """Runs dispatch cycles over the notification store."""

    def __init__(
        self,
        session: Session,
        sender: Optional[ChannelSender] = None,
        publisher: Optional[DaprEventPublisher] = None,
        worker_id: str = WORKER_ID,
        send_timeout: float = CHANNEL_SEND_TIMEOUT_SECONDS,
        lease_margin: float = CLAIM_LEASE_MARGIN_SECONDS,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = NotificationStore(session)
        self.sender = sender or ChannelSender()
        self.publisher = publisher or dapr_publisher
        self.worker_id = worker_id
        self.send_timeout = send_timeout
        self.lease_seconds = send_timeout + lease_margin
        self.metrics = metrics or metrics_collector

    async def run_once(self, now: Optional[datetime] = None) -> DispatchSummary:
        """
        Run one dispatch cycle.

        Per-record delivery problems are recorded on the record and never
        raised. Store errors propagate and abort the cycle.

        Args:
            now: Cycle time; defaults to the current UTC time

        Returns:
            DispatchSummary with per-cycle counts
        """
        now = to_utc_naive(now) if now is not None else utcnow()
        summary = DispatchSummary()

        with self.metrics.time_operation("dispatch_cycle_seconds"):
            candidates = self.store.find_due(now) + self.store.find_retryable(now)
            candidates.sort(key=_dispatch_order)
            # Every commit expires loaded rows, so keep what was observed at read time
            observed = [(record, record.id, record.status, record.version) for record in candidates]

            for record, notification_id, status, version in observed:
                try:
                    await self._dispatch_one(record, notification_id, status, version, now, summary)
                except ConcurrencyConflict as e:
                    logger.debug("%s; skipping", e)
                    summary.skipped += 1

        self.metrics.increment_counter("dispatch_cycles_total")
        if summary.processed or summary.skipped:
            dispatch_logger.info("Dispatch cycle finished", worker_id=self.worker_id, now=now, **summary.to_dict())
        return summary

    async def _dispatch_one(
        self,
        record: Notification,
        notification_id: int,
        observed_status: str,
        observed_version: int,
        now: datetime,
        summary: DispatchSummary,
    ):
        is_retry = observed_status == NotificationStatus.FAILED.value

        try:
            claimed_version = self.store.claim(
                record,
                self.worker_id,
                now,
                self.lease_seconds,
                observed_status=observed_status,
                observed_version=observed_version,
            )
        except ObjectDeletedError:
            claimed_version = None
        if claimed_version is None:
            self.metrics.claim_conflict()
            raise ConcurrencyConflict(f"Notification {notification_id} was claimed or changed by another writer")

        summary.processed += 1
        if is_retry:
            self.metrics.retry_attempt()

        user_id = record.user_id
        max_retries = record.max_retries
        outcome, error, receipt = await self._deliver(record)
        decision = decide(record, outcome)

        values: Dict[str, Any] = {
            "status": decision.next_status,
            "retry_count": decision.next_retry_count,
            "delivery_receipt": receipt,
            "claimed_by": None,
            "claimed_until": None,
        }
        if outcome == DeliveryOutcome.DELIVERED:
            values.update(sent_at=now, failed_at=None, last_error=None)
        else:
            values.update(failed_at=now, last_error=error)

        applied = self.store.transition(
            notification_id,
            [observed_status],
            expected_version=claimed_version,
            **values,
        )
        if not applied:
            raise ConcurrencyConflict(f"Notification {notification_id} changed while in flight; delivery result discarded")

        if outcome == DeliveryOutcome.DELIVERED:
            summary.sent += 1
            self.metrics.notification_sent()
            logger.info("Notification %s sent to user %s", notification_id, user_id)
            return

        summary.failed += 1
        self.metrics.notification_failed()
        logger.info(
            "Notification %s failed (attempt %s of %s): %s",
            notification_id,
            decision.next_retry_count,
            max_retries,
            error,
        )
        if decision.is_terminal:
            summary.exhausted += 1
            self.metrics.notification_exhausted()
            self._report_exhausted(record, notification_id)

    async def _deliver(self, record: Notification) -> Tuple[DeliveryOutcome, Optional[str], Optional[Dict[str, Any]]]:
        """Send one record and classify the result."""
        try:
            results = await asyncio.wait_for(
                self.sender.send(
                    list(record.channels or []),
                    record.title,
                    record.body,
                    record.priority,
                    user_id=record.user_id,
                    metadata=dict(record.details or {}),
                ),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError:
            return DeliveryOutcome.FAILED, f"Channel send timed out after {self.send_timeout:g}s", None
        except PermanentDeliveryFailure as e:
            return DeliveryOutcome.PERMANENT_FAILURE, f"{type(e).__name__}: {e}", None
        except DeliveryFailure as e:
            return DeliveryOutcome.FAILED, str(e) or type(e).__name__, None
        except Exception as e:
            # Anything else from the sender is a defect that retrying will not fix
            logger.exception("Channel sender raised for notification %s", record.id)
            return DeliveryOutcome.PERMANENT_FAILURE, f"{type(e).__name__}: {e}", None

        receipt = {
            channel: {"delivered": result.delivered, "error": result.error}
            for channel, result in results.items()
        }
        if any(result.delivered for result in results.values()):
            return DeliveryOutcome.DELIVERED, None, receipt

        errors = [f"{channel}: {result.error}" for channel, result in results.items()]
        return DeliveryOutcome.FAILED, "; ".join(errors) or "no channel delivered", receipt

    def _report_exhausted(self, record: Notification, notification_id: int):
        try:
            self.store.session.refresh(record)
        except ObjectDeletedError:
            logger.debug("Notification %s was deleted before its failure could be reported", notification_id)
            return

        failure = record.failure_event()
        dispatch_logger.warning("Notification exhausted retries", **failure)
        try:
            self.publisher.publish_notification_failed(failure)
        except Exception:
            # The record already carries the failure; the event is best effort
            dispatch_logger.exception("Could not publish failure event", **failure)
