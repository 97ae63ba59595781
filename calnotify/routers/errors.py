"""Translate notification engine errors into HTTP errors."""
from fastapi import HTTPException, status

from calnotify.services.errors import (
    DuplicateNotification,
    InvalidTransition,
    NotFoundError,
    NotificationError,
    ValidationError,
)


def http_error(error: NotificationError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=error.errors)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (InvalidTransition, DuplicateNotification)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
