"""Routers package for the notification API."""

from .admin import router as admin_router
from .events import router as events_router
from .notifications import router as notifications_router
from .preferences import router as preferences_router

__all__ = ["admin_router", "events_router", "notifications_router", "preferences_router"]
