"""Calendar event model for SQLModel."""
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, ForeignKey, String, Text
from sqlmodel import Field, SQLModel

from calnotify.utils.timeutils import utcnow


class Event(SQLModel, table=True):
    """Calendar event owned by the calendar application.

    The notification engine only reads ``id``, ``title`` and ``start_time``.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(
        sa_column=Column(String, ForeignKey("user.id", ondelete="CASCADE"), index=True)
    )
    group_id: Optional[str] = Field(default=None, max_length=100)
    title: str = Field(max_length=200, min_length=1)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    start_time: datetime  # naive UTC
    end_time: Optional[datetime] = Field(default=None)
    timezone: str = Field(default="UTC", max_length=64)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
