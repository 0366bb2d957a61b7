"""
Payout-specific exceptions.

Exception Hierarchy:
    ValidationError
    └── PaymentMethodValidationError - Bad payment method payload (never retried)

    NotFoundError
    ├── PayoutNotFoundError
    ├── PaymentMethodNotFoundError - Missing or owned by another operator
    └── BookingNotFoundError

    PayoutError (base for payout business rules)
    └── IneligibleError - Eligibility rules failed, carries every reason

    ConflictError
    ├── InvalidStateError - Operation requires a different current status
    ├── InvalidTransitionError - FSM transition not allowed
    ├── RetryLimitError - Bounded retry attempts exhausted
    └── LockAcquisitionError - Distributed lock timeout

    ExternalServiceError
    └── ProviderError - Settlement channel failure, carries code + retryable
        └── ProviderTimeoutError - No definitive answer in time (retryable)

Usage:
    from payouts.exceptions import IneligibleError, ProviderError

    try:
        orchestrator.process_payout(request)
    except IneligibleError as e:
        return e.to_dict()  # {"error": ..., "error_code": ..., "details": {"reasons": [...]}}
    except ProviderError as e:
        if e.retryable:
            retry_payout.delay(str(payout_id))
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Validation / Lookup Exceptions
# =============================================================================


class PaymentMethodValidationError(ValidationError):
    """
    Raised when a payment method payload fails shape or format checks.

    Example:
        raise PaymentMethodValidationError(
            "Routing number failed checksum",
            details={"field": "routing_number"},
        )
    """

    default_error_code: str = "INVALID_PAYMENT_METHOD"


class PayoutNotFoundError(NotFoundError):
    default_error_code: str = "PAYOUT_NOT_FOUND"


class PaymentMethodNotFoundError(NotFoundError):
    """
    Raised when a payment method does not exist or belongs to another operator.

    Both cases produce the same error so callers cannot discover other
    operators' method ids.
    """

    default_error_code: str = "PAYMENT_METHOD_NOT_FOUND"


class BookingNotFoundError(NotFoundError):
    default_error_code: str = "BOOKING_NOT_FOUND"


# =============================================================================
# Payout Domain Exceptions
# =============================================================================


class PayoutError(BaseApplicationError):
    """Base exception for payout business-rule failures."""

    default_error_code: str = "PAYOUT_ERROR"


class IneligibleError(PayoutError):
    """
    Raised when a payout request violates one or more eligibility rules.

    Every failing rule is reported, not just the first, so the caller can
    surface the full list verbatim.

    Attributes:
        reasons: Human-readable description of each failing rule
    """

    default_error_code: str = "PAYOUT_INELIGIBLE"

    def __init__(
        self,
        reasons: list[str],
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.reasons = list(reasons)
        details = dict(details or {})
        details["reasons"] = self.reasons
        super().__init__(
            message or "Payout is not eligible: " + "; ".join(self.reasons),
            details=details,
        )


# =============================================================================
# State / Concurrency Exceptions
# =============================================================================


class InvalidStateError(ConflictError):
    """
    Raised when an operation requires the payout to be in a specific status.

    Example:
        raise InvalidStateError(
            "Only failed payouts can be retried",
            details={"payout_id": str(payout.id), "status": payout.status},
        )
    """

    default_error_code: str = "INVALID_PAYOUT_STATE"


class InvalidTransitionError(ConflictError):
    """
    Raised when a django-fsm transition is not allowed from the current state.

    Wraps django_fsm.TransitionNotAllowed so callers only deal with
    application exceptions.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class RetryLimitError(ConflictError):
    """
    Raised when a failed payout has used up its retry attempts.

    The payout stays failed and needs manual intervention.
    """

    default_error_code: str = "RETRY_LIMIT_EXCEEDED"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another process is working on the same booking or payout. The caller
    may retry after a short delay.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(ExternalServiceError):
    """
    Raised when a settlement channel rejects or fails a transfer.

    Attributes:
        code: Machine-readable failure code (also exposed as error_code)
        retryable: Whether the same transfer may succeed if attempted again

    Non-retryable failures still leave the payout failed and eligible for
    retry_payout; only the orchestrator's retry limit gates a retry. The
    flag is a hint for callers deciding whether to enqueue one.

    Messages must never contain full account numbers or provider secrets.
    """

    default_error_code: str = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        details["retryable"] = retryable
        super().__init__(message, error_code=code, details=details)
        self.retryable = retryable

    @property
    def code(self) -> str:
        return self.error_code


class ProviderTimeoutError(ProviderError):
    """
    Raised when a provider call does not return within the configured timeout.

    IMPORTANT: The transfer may still have been accepted by the provider.
    The payout keeps its current status until an explicit settlement
    update resolves it. Do not redispatch it blindly: a retry is a new
    attempt with a new idempotency key.
    """

    default_error_code: str = "PROVIDER_TIMEOUT"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code=code, retryable=True, details=details)


__all__ = [
    "BookingNotFoundError",
    "IneligibleError",
    "InvalidStateError",
    "InvalidTransitionError",
    "LockAcquisitionError",
    "PaymentMethodNotFoundError",
    "PaymentMethodValidationError",
    "PayoutError",
    "PayoutNotFoundError",
    "ProviderError",
    "ProviderTimeoutError",
    "RetryLimitError",
]
