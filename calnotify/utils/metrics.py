"""
Metrics for the notification dispatcher.

In-process counters and cumulative timings, exposed through the admin API.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from calnotify.utils.timeutils import utcnow

COUNTERS = (
    "notifications_sent_total",
    "notifications_failed_total",
    "notifications_exhausted_total",
    "retry_attempts_total",
    "claim_conflicts_total",
    "reminders_generated_total",
    "dispatch_cycles_total",
)


class MetricsCollector:
    """Collects and manages metrics for the notification engine."""

    def __init__(self):
        self.metrics = defaultdict(int)
        self.timers = defaultdict(float)
        self.lock = threading.Lock()
        for name in COUNTERS:
            self.metrics[name] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        with self.lock:
            self.metrics[metric_name] += value

    def record_timer(self, metric_name: str, duration: float):
        with self.lock:
            self.timers[metric_name] += duration

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timers": dict(self.timers),
                "timestamp": utcnow().isoformat(),
            }

    def reset(self):
        with self.lock:
            self.metrics.clear()
            self.timers.clear()
            for name in COUNTERS:
                self.metrics[name] = 0

    def notification_sent(self):
        self.increment_counter("notifications_sent_total")

    def notification_failed(self):
        self.increment_counter("notifications_failed_total")

    def notification_exhausted(self):
        self.increment_counter("notifications_exhausted_total")

    def retry_attempt(self):
        self.increment_counter("retry_attempts_total")

    def claim_conflict(self):
        self.increment_counter("claim_conflicts_total")

    def reminders_generated(self, count: int):
        self.increment_counter("reminders_generated_total", count)

    @contextmanager
    def time_operation(self, metric_name: str) -> Iterator[None]:
        """Context manager to time an operation."""
        start_time = time.monotonic()
        try:
            yield
        finally:
            self.record_timer(metric_name, time.monotonic() - start_time)


# Global metrics instance
metrics_collector = MetricsCollector()
