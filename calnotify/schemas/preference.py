"""Notification preference schemas."""
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional

import pytz

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class PreferenceResponse(BaseModel):
    user_id: str
    lead_times: List[int]
    quiet_hours_enabled: bool
    quiet_hours_start: str
    quiet_hours_end: str
    timezone: str
    push_enabled: bool
    email_enabled: bool
    sms_enabled: bool
    in_app_enabled: bool
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PreferenceUpdate(BaseModel):
    """Partial update of a user's notification preferences."""
    lead_times: Optional[List[int]] = Field(None, max_length=10)
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = Field(None, pattern=HHMM_PATTERN)  # local HH:MM
    quiet_hours_end: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    timezone: Optional[str] = None
    push_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None

    @field_validator("lead_times")
    @classmethod
    def lead_times_positive(cls, value):
        if value is not None and any(minutes <= 0 or minutes > 10080 for minutes in value):
            raise ValueError("Lead times must be between 1 and 10080 minutes")
        return value

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value):
        if value is not None and value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value
