"""
Error kinds for the coordination engine.

Errors are raised as exceptions inside a unit of work, so the store rolls
back, and converted to result dicts at the public boundary:

    {"success": False, "error": "Event not found: ab12", "error_code": "not_found"}
"""

from typing import Any

NOT_FOUND = "not_found"
ACCESS_DENIED = "access_denied"
INVALID_STATE = "invalid_state"
VALIDATION_ERROR = "validation_error"
EXTERNAL_SERVICE_ERROR = "external_service_error"


class CoordinationError(Exception):
    """Base exception for all engine errors."""

    code = "error"

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class NotFoundError(CoordinationError):
    """Raised when an entity does not exist."""

    code = NOT_FOUND


class AccessDeniedError(CoordinationError):
    """Raised when the caller is not allowed to read or change an event."""

    code = ACCESS_DENIED


class InvalidStateError(CoordinationError):
    """Raised when an operation does not fit the event's lifecycle state."""

    code = INVALID_STATE


class ValidationError(CoordinationError):
    """Raised on malformed input (empty title, bad interval, bad email)."""

    code = VALIDATION_ERROR


class ExternalServiceError(CoordinationError):
    """Raised when the calendar provider fails or times out."""

    code = EXTERNAL_SERVICE_ERROR


class CalendarUnavailableError(ExternalServiceError):
    """Raised when a user has no usable calendar credential."""


def error_result(error: CoordinationError) -> dict[str, Any]:
    """Convert a CoordinationError into a failed result dict."""
    result: dict[str, Any] = {
        "success": False,
        "error": error.message,
        "error_code": error.code,
    }
    if error.detail:
        result["detail"] = error.detail
    return result


__all__ = [
    "ACCESS_DENIED",
    "AccessDeniedError",
    "CalendarUnavailableError",
    "CoordinationError",
    "EXTERNAL_SERVICE_ERROR",
    "ExternalServiceError",
    "INVALID_STATE",
    "InvalidStateError",
    "NOT_FOUND",
    "NotFoundError",
    "VALIDATION_ERROR",
    "ValidationError",
    "error_result",
]
