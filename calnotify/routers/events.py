"""Event reminder router: schedule, refresh and cancel-fan-out per event."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, status
from sqlmodel import Session

from calnotify.db.config import get_session
from calnotify.middleware.auth import CurrentUser, ensure_same_user, get_current_user
from calnotify.routers.errors import http_error
from calnotify.schemas.notification import EventCancelRequest, NotificationResponse, ReminderRequest
from calnotify.services.errors import NotificationError
from calnotify.services.notification_actions import NotificationActions
from calnotify.services.reminder_generator import ReminderGenerator
from calnotify.utils.timeutils import utcnow

router = APIRouter(tags=["Event Reminders"])


def get_generator(session: Session = Depends(get_session)) -> ReminderGenerator:
    return ReminderGenerator(session)


def _schedule(generator: ReminderGenerator, event_id: int, user_id: str, data: ReminderRequest) -> List[Any]:
    now = utcnow()
    if data.member_ids:
        return generator.schedule_for_members(event_id, data.member_ids, lead_times=data.lead_times, now=now)
    if data.include_event_start:
        return generator.schedule_event_notifications(event_id, user_id, lead_times=data.lead_times, now=now)
    return generator.generate(event_id, user_id, lead_times=data.lead_times, now=now)


@router.post(
    "/{user_id}/events/{event_id}/reminders",
    response_model=Dict[str, Any],
    status_code=status.HTTP_201_CREATED,
)
async def schedule_reminders(
    user_id: str,
    event_id: int,
    data: Optional[ReminderRequest] = Body(None),
    current_user: CurrentUser = Depends(get_current_user),
    generator: ReminderGenerator = Depends(get_generator),
):
    """Schedule advance reminders (and the start notification) for an event."""
    ensure_same_user(user_id, current_user)

    try:
        notifications = _schedule(generator, event_id, user_id, data or ReminderRequest())
    except NotificationError as e:
        raise http_error(e)
    return {
        "notifications": [NotificationResponse.model_validate(n) for n in notifications],
        "count": len(notifications),
    }


@router.put("/{user_id}/events/{event_id}/reminders", response_model=Dict[str, Any])
async def refresh_reminders(
    user_id: str,
    event_id: int,
    data: Optional[ReminderRequest] = Body(None),
    current_user: CurrentUser = Depends(get_current_user),
    generator: ReminderGenerator = Depends(get_generator),
):
    """Reschedule after the event's start time changed."""
    ensure_same_user(user_id, current_user)
    data = data or ReminderRequest()

    try:
        notifications = generator.refresh_for_event(event_id, user_id, lead_times=data.lead_times, now=utcnow())
    except NotificationError as e:
        raise http_error(e)
    return {
        "notifications": [NotificationResponse.model_validate(n) for n in notifications],
        "count": len(notifications),
    }


@router.post("/{user_id}/events/{event_id}/cancel", response_model=Dict[str, Any])
async def cancel_event(
    user_id: str,
    event_id: int,
    data: Optional[EventCancelRequest] = Body(None),
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Cancel the event's pending notifications and notify participants."""
    ensure_same_user(user_id, current_user)
    participant_ids = (data.participant_ids if data else None) or [user_id]

    try:
        result = NotificationActions(session).cancel_event(event_id, participant_ids)
    except NotificationError as e:
        raise http_error(e)
    return {
        "cancelled": result["cancelled"],
        "notifications": [NotificationResponse.model_validate(n) for n in result["notifications"]],
    }
