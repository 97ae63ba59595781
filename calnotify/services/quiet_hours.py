"""Quiet-hours window evaluated in the user's local time."""
import logging
from datetime import datetime, time, timedelta
from typing import Optional

import pytz

from calnotify.utils.timeutils import to_utc_naive

logger = logging.getLogger(__name__)


def parse_hhmm(value: str) -> time:
    """Parse a local wall-clock time such as ``"22:00"``."""
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def get_timezone(name: Optional[str]):
    try:
        return pytz.timezone(name or "UTC")
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %r; evaluating quiet hours in UTC", name)
        return pytz.utc


class QuietHours:
    """A daily ``[start, end)`` window of local time.

    ``start > end`` means the window wraps past midnight (e.g. 22:00-07:00).
    ``start == end`` is an empty window.
    """

    def __init__(self, start: str, end: str, timezone: Optional[str] = "UTC"):
        self.start = parse_hhmm(start)
        self.end = parse_hhmm(end)
        self.tz = get_timezone(timezone)

    @classmethod
    def from_preference(cls, preference) -> Optional["QuietHours"]:
        if not preference.quiet_hours_enabled:
            return None
        return cls(preference.quiet_hours_start, preference.quiet_hours_end, preference.timezone)

    def _local(self, moment: datetime) -> datetime:
        return pytz.utc.localize(to_utc_naive(moment)).astimezone(self.tz)

    def contains(self, moment: datetime) -> bool:
        """Whether the naive-UTC ``moment`` falls inside the window."""
        if self.start == self.end:
            return False
        local_time = self._local(moment).time()
        if self.start < self.end:
            return self.start <= local_time < self.end
        return local_time >= self.start or local_time < self.end

    def shift(self, moment: datetime) -> datetime:
        """
        Move ``moment`` to the end of the quiet window containing it.

        Times outside the window are returned unchanged. The result is never
        earlier than ``moment`` and is at most one local day later.

        Returns:
            Naive UTC datetime
        """
        moment = to_utc_naive(moment)
        if not self.contains(moment):
            return moment

        local = self._local(moment)
        end_date = local.date()
        if self.start > self.end and local.time() >= self.start:
            # Overnight window entered before midnight ends the next morning
            end_date += timedelta(days=1)

        local_end = self.tz.localize(datetime.combine(end_date, self.end))
        shifted = to_utc_naive(self.tz.normalize(local_end))
        return max(shifted, moment)
