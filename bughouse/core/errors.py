"""
Domain errors raised by the scheduling, booking and application services.

Each error carries a stable ``kind`` so callers can branch on it without
parsing messages, and knows which HTTP status it maps to.
"""

from typing import Any

from fastapi import HTTPException, status


class DomainError(Exception):
    """Base class for every error the services raise on purpose."""

    kind = "domain_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationError(DomainError):
    """Malformed or out-of-policy input."""

    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidDayError(ValidationError):
    """A date falls outside the operating weekdays."""


class InvalidRangeError(ValidationError):
    """A time range falls outside operating hours or is empty."""


class AuthRequiredError(DomainError):
    kind = "auth_required"
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(DomainError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(DomainError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    """Double-booking or overlapping inventory, including a lost insert race."""

    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidStateError(DomainError):
    """A state machine transition that is not allowed from the current state."""

    kind = "invalid_state"
    status_code = status.HTTP_409_CONFLICT
