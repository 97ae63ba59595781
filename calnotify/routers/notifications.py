"""Notification router."""
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from calnotify.config import DEFAULT_MAX_RETRIES, DEFAULT_SNOOZE_MINUTES
from calnotify.db.config import get_session
from calnotify.middleware.auth import CurrentUser, ensure_same_user, get_current_user
from calnotify.routers.errors import http_error
from calnotify.schemas.notification import (
    AcknowledgeRequest,
    AcknowledgeResponse,
    NotificationCreate,
    NotificationResponse,
)
from calnotify.services.errors import NotificationError
from calnotify.services.notification_actions import NotificationActions
from calnotify.services.notification_store import NotificationStore
from calnotify.utils.timeutils import utcnow

router = APIRouter(tags=["Notifications"])  # main.py adds the /api prefix


def get_store(session: Session = Depends(get_session)) -> NotificationStore:
    return NotificationStore(session)


def get_actions(session: Session = Depends(get_session)) -> NotificationActions:
    return NotificationActions(session)


@router.get("/{user_id}/notifications", response_model=Dict[str, Any])
async def list_notifications(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_store),
    kind: Optional[str] = Query(None, description="Filter by notification kind"),
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[str] = Query(None, description="Filter by priority"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """List the user's notifications, newest first."""
    ensure_same_user(user_id, current_user)

    rows, total = store.list_for_user(
        user_id,
        kind=kind,
        status=status_filter,
        priority=priority,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return {
        "notifications": [NotificationResponse.model_validate(row) for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.get("/{user_id}/notifications/unread-count", response_model=Dict[str, int])
async def unread_count(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_store),
):
    """Count delivered notifications that have not been acknowledged."""
    ensure_same_user(user_id, current_user)
    return {"unread_count": store.count_unacknowledged(user_id)}


@router.get("/{user_id}/notifications/stats", response_model=Dict[str, Any])
async def notification_stats(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_store),
    days: int = Query(30, ge=1, le=365),
):
    ensure_same_user(user_id, current_user)
    return {"days": days, "stats": store.stats_for_user(user_id, utcnow() - timedelta(days=days))}


@router.put("/{user_id}/notifications/acknowledge-all", response_model=Dict[str, int])
async def acknowledge_all(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    actions: NotificationActions = Depends(get_actions),
):
    """Acknowledge every delivered notification."""
    ensure_same_user(user_id, current_user)
    return {"acknowledged": actions.acknowledge_all(user_id)}


@router.get("/{user_id}/notifications/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    user_id: str,
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_store),
):
    ensure_same_user(user_id, current_user)

    notification = store.get_for_user(notification_id, user_id)
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@router.post("/{user_id}/notifications", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    user_id: str,
    data: NotificationCreate,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_store),
):
    """Create a notification scheduled by another part of the calendar app."""
    ensure_same_user(user_id, current_user)

    try:
        return store.create(
            user_id=user_id,
            kind=data.kind,
            title=data.title,
            body=data.body,
            scheduled_at=data.scheduled_at,
            channels=data.channels,
            event_id=data.event_id,
            priority=data.priority,
            max_retries=DEFAULT_MAX_RETRIES if data.max_retries is None else data.max_retries,
            details=data.details,
        )
    except NotificationError as e:
        raise http_error(e)


@router.post("/{user_id}/notifications/{notification_id}/acknowledge", response_model=AcknowledgeResponse)
async def acknowledge_notification(
    user_id: str,
    notification_id: int,
    data: AcknowledgeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    actions: NotificationActions = Depends(get_actions),
):
    """Record the user's response (confirmed, snooze, ready, dismissed)."""
    ensure_same_user(user_id, current_user)

    try:
        result = actions.acknowledge(
            notification_id,
            user_id,
            action=data.action,
            snooze_minutes=data.snooze_minutes or DEFAULT_SNOOZE_MINUTES,
        )
    except NotificationError as e:
        raise http_error(e)
    return AcknowledgeResponse(
        notification=NotificationResponse.model_validate(result["notification"]),
        action=result["action"],
        follow_up=NotificationResponse.model_validate(result["follow_up"]) if result["follow_up"] else None,
        message=result["message"],
    )


@router.post("/{user_id}/notifications/{notification_id}/cancel", response_model=NotificationResponse)
async def cancel_notification(
    user_id: str,
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    actions: NotificationActions = Depends(get_actions),
):
    ensure_same_user(user_id, current_user)

    try:
        return actions.cancel(notification_id, user_id)
    except NotificationError as e:
        raise http_error(e)


@router.delete("/{user_id}/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    user_id: str,
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    store: NotificationStore = Depends(get_store),
):
    """Delete a notification."""
    ensure_same_user(user_id, current_user)

    if not store.delete(notification_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
