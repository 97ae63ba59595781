"""Operator endpoints: trigger a dispatch cycle and read dispatcher metrics."""
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlmodel import Session

from calnotify.db.config import get_session
from calnotify.middleware.auth import CurrentUser, require_admin
from calnotify.schemas.notification import DispatchResponse
from calnotify.services.dispatcher import NotificationDispatcher
from calnotify.utils.metrics import metrics_collector

router = APIRouter(prefix="/admin/notifications", tags=["Admin"])


def get_dispatcher(session: Session = Depends(get_session)) -> NotificationDispatcher:
    return NotificationDispatcher(session)


@router.post("/dispatch", response_model=DispatchResponse)
async def dispatch_now(
    current_user: CurrentUser = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Run one dispatch cycle immediately."""
    summary = await dispatcher.run_once()
    return summary.to_dict()


@router.get("/metrics", response_model=Dict[str, Any])
async def dispatcher_metrics(current_user: CurrentUser = Depends(require_admin)):
    return metrics_collector.get_metrics()
