"""Translate scheduling errors into HTTP responses."""
from __future__ import annotations

from fastapi import HTTPException, status

from study_scheduler.services.errors import (
    AuthError,
    NeedsSetupError,
    NotFoundError,
    PersistenceError,
    SchedulingError,
    ValidationError,
)


def http_error_from(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, AuthError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(exc, NeedsSetupError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": exc.message, "needs_setup": True},
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message)
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
