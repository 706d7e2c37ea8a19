"""Domain errors raised by the scheduling services."""
from __future__ import annotations


class SchedulingError(Exception):
    """Base class for every error the scheduling engine surfaces to callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthError(SchedulingError):
    """Caller is not authenticated."""


class NeedsSetupError(SchedulingError):
    """Generation attempted before the user configured a weekly schedule."""


class NotFoundError(SchedulingError):
    """Target record does not exist or belongs to another user."""


class ValidationError(SchedulingError):
    """Malformed action or request shape."""


class PersistenceError(SchedulingError):
    """The storage layer failed; the operation was rolled back."""
