"""Notification Validator."""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from calnotify.models.notification import DeliveryChannel, NotificationKind, NotificationPriority

VALID_KINDS = {kind.value for kind in NotificationKind}
VALID_PRIORITIES = {priority.value for priority in NotificationPriority}
VALID_CHANNELS = {channel.value for channel in DeliveryChannel}


class NotificationValidator:
    """Validate notification records before they enter the store."""

    @staticmethod
    def validate_new(
        kind: Optional[str],
        title: Optional[str],
        body: Optional[str],
        scheduled_at: Optional[datetime],
        channels: Optional[Iterable[str]],
        priority: Optional[str] = NotificationPriority.MEDIUM.value,
        max_retries: int = 0,
    ) -> Dict[str, Any]:
        """
        Validate the fields of a notification about to be created.

        Args:
            kind: Notification kind
            title: Display title
            body: Display body
            scheduled_at: Earliest delivery time
            channels: Delivery channels
            priority: Priority label
            max_retries: Retry budget

        Returns:
            Dict with validation result
        """
        result = {
            "valid": True,
            "errors": [],
        }

        if kind not in VALID_KINDS:
            result["errors"].append(f"Unknown notification kind: {kind}")

        if not title or not title.strip():
            result["errors"].append("Title is required")
        elif len(title) > 200:
            result["errors"].append("Title must be at most 200 characters")

        if not body or not body.strip():
            result["errors"].append("Body is required")

        if scheduled_at is None:
            result["errors"].append("scheduled_at is required")
        elif not isinstance(scheduled_at, datetime):
            result["errors"].append("scheduled_at must be a datetime")

        channel_list = list(channels or [])
        if not channel_list:
            result["errors"].append("At least one delivery channel is required")
        else:
            unknown = sorted(set(channel_list) - VALID_CHANNELS)
            if unknown:
                result["errors"].append(f"Unknown delivery channels: {', '.join(unknown)}")

        if priority not in VALID_PRIORITIES:
            result["errors"].append(f"Priority must be one of: {', '.join(sorted(VALID_PRIORITIES))}")

        if max_retries is None or int(max_retries) < 0:
            result["errors"].append("max_retries must be zero or greater")

        result["valid"] = not result["errors"]
        return result
