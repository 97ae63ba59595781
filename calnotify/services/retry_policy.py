"""Retry and failure policy for notification delivery attempts."""
from enum import Enum
from typing import NamedTuple

from calnotify.models.notification import Notification, NotificationStatus


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    PERMANENT_FAILURE = "permanent_failure"


class RetryDecision(NamedTuple):
    next_status: str
    next_retry_count: int
    is_terminal: bool


def decide(record: Notification, outcome: DeliveryOutcome) -> RetryDecision:
    """
    Decide the record's next status and retry bookkeeping after an attempt.

    Retryable failures are picked up again on the next dispatch cycle; there is
    no backoff delay. ``retry_count`` never exceeds ``max_retries``.

    Args:
        record: Notification that was just attempted
        outcome: Result of the delivery attempt

    Returns:
        RetryDecision with the next status, retry count and terminality
    """
    max_retries = max(int(record.max_retries or 0), 0)
    retry_count = int(record.retry_count or 0)

    if outcome == DeliveryOutcome.DELIVERED:
        return RetryDecision(NotificationStatus.SENT.value, retry_count, False)

    if outcome == DeliveryOutcome.PERMANENT_FAILURE:
        return RetryDecision(NotificationStatus.FAILED.value, max_retries, True)

    next_retry_count = min(retry_count + 1, max_retries)
    return RetryDecision(
        NotificationStatus.FAILED.value,
        next_retry_count,
        next_retry_count >= max_retries,
    )
