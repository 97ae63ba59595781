"""Per-user notification preferences."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, ForeignKey, String
from sqlmodel import Field, SQLModel

from calnotify.models.notification import DeliveryChannel
from calnotify.utils.timeutils import utcnow

DEFAULT_LEAD_TIMES = [15, 60]


class UserPreference(SQLModel, table=True):
    """Notification preferences consumed read-only by the reminder generator."""

    __tablename__ = "user_preference"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(
        sa_column=Column(String, ForeignKey("user.id", ondelete="CASCADE"), unique=True, index=True)
    )
    lead_times: List[int] = Field(
        default_factory=lambda: list(DEFAULT_LEAD_TIMES),
        sa_column=Column(JSON, nullable=False),
    )
    quiet_hours_enabled: bool = Field(default=False)
    quiet_hours_start: str = Field(default="22:00", max_length=5)  # local HH:MM
    quiet_hours_end: str = Field(default="08:00", max_length=5)
    timezone: str = Field(default="UTC", max_length=64)
    push_enabled: bool = Field(default=True)
    email_enabled: bool = Field(default=True)
    sms_enabled: bool = Field(default=False)
    in_app_enabled: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def enabled_channels(self) -> List[str]:
        channels = []
        if self.push_enabled:
            channels.append(DeliveryChannel.PUSH.value)
        if self.email_enabled:
            channels.append(DeliveryChannel.EMAIL.value)
        if self.sms_enabled:
            channels.append(DeliveryChannel.SMS.value)
        if self.in_app_enabled:
            channels.append(DeliveryChannel.IN_APP.value)
        return channels

    def normalized_lead_times(self) -> List[int]:
        """Positive, de-duplicated lead times in ascending order."""
        return sorted({int(m) for m in (self.lead_times or []) if int(m) > 0})
