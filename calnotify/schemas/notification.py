"""Notification schemas for the REST API."""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional


class NotificationCreate(BaseModel):
    """Schema for creating a notification on behalf of another service."""
    kind: str = Field(default="system_notification")
    title: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1)
    scheduled_at: datetime  # ISO 8601; naive values are UTC
    channels: List[str] = Field(..., min_length=1)
    priority: str = Field(default="medium", pattern=r"^(low|medium|high|urgent)$")
    max_retries: Optional[int] = Field(None, ge=0, le=20)
    event_id: Optional[int] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class NotificationResponse(BaseModel):
    """Schema for notification API responses."""
    id: int
    user_id: str
    event_id: Optional[int] = None
    kind: str
    title: str
    body: str
    scheduled_at: datetime
    status: str
    priority: str
    channels: List[str]
    user_action: Optional[str] = None
    retry_count: int
    max_retries: int
    last_error: Optional[str] = None
    sent_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    details: Optional[Dict[str, Any]] = None
    delivery_receipt: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AcknowledgeRequest(BaseModel):
    """User response to a delivered notification."""
    action: str = Field(default="confirmed", pattern=r"^(confirmed|snooze|ready|dismissed)$")
    snooze_minutes: Optional[int] = Field(None, ge=1, le=1440)


class AcknowledgeResponse(BaseModel):
    notification: NotificationResponse
    action: str
    follow_up: Optional[NotificationResponse] = None
    message: str


class ReminderRequest(BaseModel):
    """Schedule reminders for an event."""
    lead_times: Optional[List[int]] = Field(None, max_length=10)  # minutes before start
    member_ids: Optional[List[str]] = None  # group members; defaults to the path user
    include_event_start: bool = True


class EventCancelRequest(BaseModel):
    participant_ids: Optional[List[str]] = None  # defaults to the path user


class DispatchResponse(BaseModel):
    processed: int
    sent: int
    failed: int
    exhausted: int
    skipped: int
