"""Main FastAPI application for the calendar notification engine."""
import asyncio
import logging

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from calnotify import __version__
from calnotify.config import RUN_DISPATCHER_IN_APP
from calnotify.db.init import init_db
from calnotify.middleware.cors import add_cors_middleware
from calnotify.routers import admin_router, events_router, notifications_router, preferences_router
from calnotify.worker import DispatchWorker

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Calendar Notification API",
    description="Scheduling and delivery of calendar event notifications",
    version=__version__,
)

add_cors_middleware(app)

# Admin routes first so "/api/admin/..." is not read as a user id
app.include_router(admin_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(preferences_router, prefix="/api")

_worker = None
_worker_task = None


@app.on_event("startup")
async def startup_event():
    """Initialize database tables and, if configured, the in-process dispatcher."""
    global _worker, _worker_task
    try:
        init_db()
        logger.info("Database tables initialized")
    except SQLAlchemyError as e:
        logger.warning("Database initialization failed: %s. Database operations may fail.", e)

    if RUN_DISPATCHER_IN_APP:
        _worker = DispatchWorker()
        _worker_task = asyncio.create_task(_worker.run())
        logger.info("In-process dispatcher started")


@app.on_event("shutdown")
async def shutdown_event():
    if _worker is not None:
        _worker.stop()
        await _worker_task


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/")
async def root():
    return {
        "title": "Calendar Notification API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("calnotify.main:app", host="0.0.0.0", port=8000, reload=True)
