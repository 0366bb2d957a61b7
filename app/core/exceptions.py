"""
Base exception classes for application-wide error handling.

Every domain error raised by the payout subsystem derives from
BaseApplicationError so callers always receive the same structured shape:
a human-readable message, a machine-readable error code and optional
details. Stack traces and provider secrets never appear in to_dict().

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input shape/format failures (never retried)
    ├── NotFoundError - Missing entity (never retried)
    ├── ConflictError - State conflicts (illegal transitions, lock contention)
    └── ExternalServiceError - Settlement channel failures

Usage:
    from core.exceptions import NotFoundError, ValidationError

    raise ValidationError("Invalid routing number", error_code="INVALID_ROUTING_NUMBER")

    try:
        ...
    except BaseApplicationError as e:
        return e.to_dict()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, identifiers, etc.)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a dictionary for an API response.

        Example:
            {
                "error": "Payout 5f0c... not found",
                "error_code": "PAYOUT_NOT_FOUND",
                "details": {"payout_id": "5f0c..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for malformed payment method payloads, bad enum values and
    any other input that can never succeed as submitted.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested entity is not found.

    Example:
        raise NotFoundError(
            f"Booking {booking_id} not found",
            error_code="BOOKING_NOT_FOUND",
            details={"booking_id": str(booking_id)},
        )
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for illegal state-machine transitions, exhausted retry budgets
    and lock contention. Maps to HTTP 409 at an API layer.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose internal
    details to clients. Maps to HTTP 502/503 at an API layer.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
