"""CORS configuration for the calendar frontend."""
import logging

from fastapi.middleware.cors import CORSMiddleware

from calnotify.config import ENVIRONMENT, FRONTEND_URL

logger = logging.getLogger(__name__)

# Base allowed origins for development
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if FRONTEND_URL and FRONTEND_URL not in ALLOWED_ORIGINS:
    ALLOWED_ORIGINS.append(FRONTEND_URL)


def add_cors_middleware(app):
    """Add CORS middleware to the FastAPI application."""
    if ENVIRONMENT == "production":
        origins = [FRONTEND_URL] if FRONTEND_URL else []
    else:
        origins = ALLOWED_ORIGINS
    logger.info("CORS (%s) allowed origins: %s", ENVIRONMENT, origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
