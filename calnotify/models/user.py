"""User model for SQLModel."""
from datetime import datetime
import uuid

from sqlmodel import Field, SQLModel

from calnotify.utils.timeutils import utcnow


class User(SQLModel, table=True):
    """Calendar user; notifications are addressed to users by id."""

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        index=True
    )
    email: str = Field(unique=True, index=True, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
