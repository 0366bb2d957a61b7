"""
Payout orchestration: eligibility, fees, ledger and dispatch.

This module provides the PayoutOrchestrator, the entry point for paying
operators. It ties the collaborators together:

    booking + operator  -> eligibility rules
    payment method      -> PaymentMethodRegistry
    fee                 -> payouts.fees
    payout record       -> PayoutLedger
    transfer            -> PayoutRouter -> provider adapter

Dispatch follows the same two-phase pattern everywhere: the payout row is
committed before the provider is called, the provider call runs outside
any database transaction, and the outcome is written back afterwards. A
provider failure therefore always leaves a persisted failed payout.

Usage:
    orchestrator = PayoutOrchestrator(
        bookings=booking_directory,
        operators=operator_directory,
    )

    execution = orchestrator.process_payout(
        PayoutRequest(operator_id=op_id, booking_id=booking_id)
    )
    execution.payout.status  # "processing"

    try:
        orchestrator.retry_payout(payout_id)
    except RetryLimitError:
        escalate_to_support(payout_id)
"""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import connection

from core.exceptions import BaseApplicationError, ValidationError
from core.services import BaseService

from payouts import fees as fees_module
from payouts.exceptions import (
    BookingNotFoundError,
    IneligibleError,
    InvalidStateError,
    InvalidTransitionError,
    PaymentMethodNotFoundError,
    ProviderError,
    ProviderTimeoutError,
    RetryLimitError,
)
from payouts.locks import PayoutLock
from payouts.protocols import OPERATOR_APPROVED, PAYABLE_BOOKING_STATUSES
from payouts.routing import PayoutRouter, build_default_router
from payouts.services.ledger import PayoutLedger
from payouts.services.registry import PaymentMethodRegistry
from payouts.state_machines import PayoutStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import ModuleType
    from typing import Any

    from payouts.adapters import TransferResult
    from payouts.models import PaymentMethod, Payout
    from payouts.protocols import BookingDirectory, BookingSnapshot, OperatorDirectory


# =============================================================================
# Constants
# =============================================================================

# Retries allowed after the first attempt
MAX_PAYOUT_RETRIES = 3

# Distributed lock TTL (seconds); must outlive PAYOUT_PROVIDER_TIMEOUT_SECONDS
PAYOUT_LOCK_TTL = 120

# Lock acquisition timeout (seconds)
PAYOUT_LOCK_TIMEOUT = 10.0

REASON_OPERATOR_NOT_APPROVED = "Operator account is not approved"
REASON_BOOKING_NOT_PAYABLE = "Booking must be checked-in or completed before payout"
REASON_ALREADY_PAID = "Payout already processed for this booking"
REASON_WRONG_OPERATOR = "Booking does not belong to this operator"
REASON_PAYOUT_IN_PROGRESS = "A payout for this booking is already in progress"
REASON_METHOD_NOT_ACTIVE = "Payment method is not active"
REASON_AMOUNT_BELOW_FEE = "Payout amount does not cover the payout fee"


# =============================================================================
# Request / Result Types
# =============================================================================


@dataclass(frozen=True)
class PayoutRequest:
    """
    A request to pay an operator for one booking.

    Attributes:
        operator_id: Operator to pay
        booking_id: Booking being settled
        payment_method_id: Destination; the operator's primary method when None
    """

    operator_id: uuid.UUID
    booking_id: uuid.UUID
    payment_method_id: uuid.UUID | None = None


@dataclass
class PayoutExecution:
    """
    Outcome of a dispatch that the provider accepted.

    Attributes:
        payout: The payout after the ledger recorded the result
        provider_result: What the adapter returned
    """

    payout: Payout
    provider_result: TransferResult


@dataclass
class BatchPayoutResult:
    """
    Per-request outcome of batch_process_payouts().

    booking_id echoes the request so callers can match results to
    bookings. payout_id is set whenever a payout row exists, including
    failed dispatches.
    """

    success: bool
    payout: Payout | None = None
    provider_result: TransferResult | None = None
    payout_id: str | None = None
    error: str | None = None
    error_code: str | None = None
    booking_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": self.success}
        if self.booking_id:
            result["booking_id"] = self.booking_id
        if self.payout_id:
            result["payout_id"] = self.payout_id
        if self.provider_result is not None:
            result["provider_transaction_id"] = (
                self.provider_result.provider_transaction_id
            )
        if not self.success:
            result["error"] = self.error
            result["error_code"] = self.error_code
        return result


# =============================================================================
# Orchestrator
# =============================================================================


class PayoutOrchestrator(BaseService):
    """
    Service that pays operators for completed bookings.

    Collaborators are injected so tests and other deployments can swap
    any of them:

    Args:
        bookings: BookingDirectory used to load bookings
        operators: OperatorDirectory used to check approval status
        registry: PaymentMethodRegistry (default: new instance)
        ledger: PayoutLedger (default: new instance)
        router: PayoutRouter (default: build_default_router())
        fees: Fee calculator exposing quote() (default: payouts.fees)
        max_workers: Batch concurrency (default: PAYOUT_BATCH_MAX_WORKERS)

    Locking:
        payout:booking:<id> is held while eligibility is checked and the
        payout row is created, so one booking never gets two payouts.
        payout:execute:<id> is held for a whole retry or settlement update.
    """

    def __init__(
        self,
        bookings: BookingDirectory,
        operators: OperatorDirectory,
        registry: PaymentMethodRegistry | None = None,
        ledger: PayoutLedger | None = None,
        router: PayoutRouter | None = None,
        fees: ModuleType | Any = fees_module,
        max_workers: int | None = None,
    ) -> None:
        self.bookings = bookings
        self.operators = operators
        self.registry = registry or PaymentMethodRegistry()
        self.ledger = ledger or PayoutLedger()
        self.router = router or build_default_router()
        self.fees = fees
        self.max_workers = max_workers

    # =========================================================================
    # Single Payout
    # =========================================================================

    def process_payout(self, request: PayoutRequest) -> PayoutExecution:
        """
        Pay an operator for a booking.

        Raises:
            BookingNotFoundError: Booking does not exist
            IneligibleError: One or more eligibility rules failed (no payout created)
            PaymentMethodNotFoundError: Method missing or not the operator's
            LockAcquisitionError: Another worker holds the booking lock
            ProviderTimeoutError: Provider gave no answer; payout stays pending
            ProviderError: Provider failed; payout is persisted as failed
        """
        logger = self.get_logger()
        booking = self.bookings.get_by_id(request.booking_id)
        if booking is None:
            raise BookingNotFoundError(
                f"Booking {request.booking_id} not found",
                details={"booking_id": str(request.booking_id)},
            )

        with PayoutLock.for_booking(
            booking.id, ttl=PAYOUT_LOCK_TTL, wait=PAYOUT_LOCK_TIMEOUT
        ):
            reasons = self.check_eligibility(request.operator_id, booking)
            if reasons:
                logger.info(
                    "Payout request ineligible",
                    extra={
                        "operator_id": str(request.operator_id),
                        "booking_id": str(booking.id),
                        "reasons": reasons,
                    },
                )
                raise IneligibleError(
                    reasons,
                    details={"booking_id": str(booking.id)},
                )

            method = self._resolve_method(request)

            quote = self.fees.quote(method.method_kind, booking.amount)
            if quote.net <= 0:
                raise IneligibleError(
                    [REASON_AMOUNT_BELOW_FEE],
                    details={
                        "booking_id": str(booking.id),
                        "amount_gross": str(quote.gross),
                        "fee_amount": str(quote.fee),
                    },
                )
            if not quote.fee_known:
                logger.warning(
                    "Creating payout with unknown fee",
                    extra={
                        "booking_id": str(booking.id),
                        "method_kind": method.method_kind,
                    },
                )

            payout = self.ledger.create(
                operator_id=request.operator_id,
                booking_id=booking.id,
                payment_method_id=method.id,
                payout_kind=method.method_kind,
                amount_gross=quote.gross,
                fee_amount=quote.fee,
                currency=fees_module.currency_for(method.method_kind),
                metadata={
                    "booking_reference": str(booking.id),
                    "tour_name": booking.tour_name,
                    "fee_known": quote.fee_known,
                },
            )

        return self._dispatch(payout, method)

    def check_eligibility(
        self,
        operator_id: uuid.UUID,
        booking: BookingSnapshot,
    ) -> list[str]:
        """
        Evaluate every eligibility rule and return the failing ones.

        An empty list means the booking can be paid out.
        """
        reasons = []

        if self.operators.get_status(operator_id) != OPERATOR_APPROVED:
            reasons.append(REASON_OPERATOR_NOT_APPROVED)

        if booking.status not in PAYABLE_BOOKING_STATUSES:
            reasons.append(REASON_BOOKING_NOT_PAYABLE)

        already_paid = booking.payout_completed or (
            self.ledger.for_booking(booking.id)
            .filter(status=PayoutStatus.COMPLETED)
            .exists()
        )
        if already_paid:
            reasons.append(REASON_ALREADY_PAID)

        if str(booking.operator_id) != str(operator_id):
            reasons.append(REASON_WRONG_OPERATOR)

        if self.ledger.has_outstanding_for_booking(booking.id):
            reasons.append(REASON_PAYOUT_IN_PROGRESS)

        return reasons

    def _resolve_method(self, request: PayoutRequest) -> PaymentMethod:
        if request.payment_method_id is not None:
            method = self.registry.get(request.payment_method_id, request.operator_id)
        else:
            method = self.registry.get_primary(request.operator_id)
            if method is None:
                raise PaymentMethodNotFoundError(
                    "Operator has no active primary payment method",
                    details={"operator_id": str(request.operator_id)},
                )

        if not method.is_active:
            raise IneligibleError(
                [REASON_METHOD_NOT_ACTIVE],
                details={
                    "payment_method_id": str(method.id),
                    "status": method.status,
                },
            )
        return method

    # =========================================================================
    # Retry
    # =========================================================================

    def retry_payout(self, payout_id: uuid.UUID) -> PayoutExecution:
        """
        Dispatch a failed payout again.

        Raises:
            PayoutNotFoundError: Payout does not exist
            InvalidStateError: Payout is not failed
            RetryLimitError: MAX_PAYOUT_RETRIES already used; nothing is dispatched
            PaymentMethodNotFoundError: The payout's method no longer exists
            IneligibleError: The payout's method is no longer active
            ProviderTimeoutError / ProviderError: As for process_payout()
        """
        with PayoutLock.for_payout(
            payout_id, ttl=PAYOUT_LOCK_TTL, wait=PAYOUT_LOCK_TIMEOUT
        ):
            payout = self.ledger.get(payout_id)
            if payout.status != PayoutStatus.FAILED:
                raise InvalidStateError(
                    f"Only failed payouts can be retried (status: {payout.status})",
                    details={"payout_id": str(payout_id), "status": payout.status},
                )
            if payout.retry_count >= MAX_PAYOUT_RETRIES:
                raise RetryLimitError(
                    f"Payout {payout_id} has reached the retry limit of {MAX_PAYOUT_RETRIES}",
                    details={
                        "payout_id": str(payout_id),
                        "retry_count": payout.retry_count,
                    },
                )

            if payout.payment_method_id is None:
                raise PaymentMethodNotFoundError(
                    "Payout has no payment method",
                    details={"payout_id": str(payout_id)},
                )
            method = self.registry.get(payout.payment_method_id, payout.operator_id)
            if not method.is_active:
                raise IneligibleError(
                    [REASON_METHOD_NOT_ACTIVE],
                    details={"payment_method_id": str(method.id)},
                )

            # Only attempts that reach the provider count against the limit
            payout = self.ledger.increment_retry(payout_id)
            self.get_logger().info(
                "Retrying payout",
                extra={"payout_id": str(payout_id), "retry_count": payout.retry_count},
            )
            return self._dispatch(payout, method)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _dispatch(self, payout: Payout, method: PaymentMethod) -> PayoutExecution:
        """
        Send the payout's net amount and record the outcome.

        The idempotency key is unique per attempt, so a retried payout
        is a new transfer at the provider while a duplicated attempt is not.

        The attempt is recorded before the provider is called; from then
        on the payout cannot be cancelled. A timeout leaves a first attempt
        pending and moves a retried (failed) payout to processing, so it
        cannot be retried again until a settlement update resolves it.
        """
        logger = self.get_logger()
        idempotency_key = f"payout:{payout.id}:{payout.retry_count}"
        description = f"Payout {payout.id}"
        if payout.booking_id:
            description = f"{description} for booking {payout.booking_id}"

        log_context = {
            "payout_id": str(payout.id),
            "operator_id": str(payout.operator_id),
            "method_kind": method.method_kind,
            "attempt": payout.retry_count,
        }

        self.ledger.record_dispatch_attempt(payout.id, idempotency_key)
        try:
            result = self.router.dispatch(
                method,
                payout.amount_net,
                description,
                idempotency_key,
            )
        except ProviderTimeoutError as e:
            # Outcome unknown: hold the payout until settlement is reported
            if payout.status == PayoutStatus.FAILED:
                self.ledger.mark_processing(payout.id)
            self.ledger.record_dispatch_error(payout.id, e)
            e.details["payout_id"] = str(payout.id)
            logger.error(
                "Payout dispatch outcome unknown",
                extra={**log_context, "error_code": e.code},
            )
            raise
        except ProviderError as e:
            self.ledger.mark_failed(payout.id, e.code, e.message)
            e.details["payout_id"] = str(payout.id)
            logger.error(
                "Payout dispatch failed",
                extra={**log_context, "error_code": e.code, "retryable": e.retryable},
            )
            raise

        payout = self.ledger.mark_processing(payout.id, result.provider_ids)
        if result.is_completed:
            payout = self.ledger.mark_completed(payout.id)
        self.registry.mark_used(method.id)
        if result.destination_updates:
            self.registry.update_details(method.id, result.destination_updates)

        logger.info(
            "Payout dispatched",
            extra={
                **log_context,
                "status": payout.status,
                "provider_transaction_id": result.provider_transaction_id,
            },
        )
        return PayoutExecution(payout=payout, provider_result=result)

    # =========================================================================
    # Batch
    # =========================================================================

    def batch_process_payouts(
        self, requests: Sequence[PayoutRequest]
    ) -> list[BatchPayoutResult]:
        """
        Process each request independently and collect the outcomes.

        One request failing never stops the others. Results are in input
        order. Up to max_workers requests run concurrently; with one
        worker they run sequentially in the calling thread.
        """
        requests = list(requests)
        workers = self.max_workers or settings.PAYOUT_BATCH_MAX_WORKERS
        workers = max(1, min(workers, len(requests) or 1))

        if workers == 1:
            results = [self._process_for_batch(request) for request in requests]
        else:
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="payout-batch"
            ) as executor:
                results = list(executor.map(self._process_in_worker, requests))

        succeeded = sum(1 for result in results if result.success)
        self.get_logger().info(
            "Batch payout finished",
            extra={
                "total": len(results),
                "succeeded": succeeded,
                "failed": len(results) - succeeded,
            },
        )
        return results

    def _process_in_worker(self, request: PayoutRequest) -> BatchPayoutResult:
        try:
            return self._process_for_batch(request)
        finally:
            # Worker threads open their own database connections
            connection.close()

    def _process_for_batch(self, request: PayoutRequest) -> BatchPayoutResult:
        try:
            execution = self.process_payout(request)
        except BaseApplicationError as e:
            return BatchPayoutResult(
                success=False,
                payout_id=e.details.get("payout_id"),
                error=e.message,
                error_code=e.error_code,
                booking_id=str(request.booking_id),
            )
        except Exception:
            self.get_logger().exception(
                "Unexpected error in batch payout",
                extra={
                    "operator_id": str(request.operator_id),
                    "booking_id": str(request.booking_id),
                },
            )
            return BatchPayoutResult(
                success=False,
                error="Unexpected error while processing payout",
                error_code="INTERNAL_ERROR",
                booking_id=str(request.booking_id),
            )

        return BatchPayoutResult(
            success=True,
            payout=execution.payout,
            provider_result=execution.provider_result,
            payout_id=str(execution.payout.id),
            booking_id=str(request.booking_id),
        )

    # =========================================================================
    # Cancellation & Settlement
    # =========================================================================

    def cancel_payout(self, payout_id: uuid.UUID, reason: str | None = None) -> Payout:
        """
        Cancel a payout that has not been dispatched.

        Raises:
            PayoutNotFoundError: Payout does not exist
            InvalidTransitionError: Payout is not pending
        """
        return self.ledger.cancel(payout_id, reason)

    def apply_settlement_update(
        self,
        payout_id: uuid.UUID,
        status: str,
        provider_ids: dict[str, str | None] | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> Payout:
        """
        Record a settlement outcome reported after dispatch.

        ACH payouts settle days after dispatch, and a timed-out dispatch
        may still have gone through. This is how either gets resolved.

        Args:
            status: processing, completed or failed

        Raises:
            ValidationError: Unsupported status
            InvalidTransitionError: Status change not allowed from the current state
        """
        if status not in (
            PayoutStatus.PROCESSING,
            PayoutStatus.COMPLETED,
            PayoutStatus.FAILED,
        ):
            raise ValidationError(
                f"Unsupported settlement status: {status}",
                details={"status": status},
            )

        with PayoutLock.for_payout(
            payout_id, ttl=PAYOUT_LOCK_TTL, wait=PAYOUT_LOCK_TIMEOUT
        ):
            payout = self.ledger.get(payout_id)
            current = payout.status

            if status == PayoutStatus.FAILED:
                payout = self.ledger.mark_failed(
                    payout_id,
                    error_code or "SETTLEMENT_FAILED",
                    error_message,
                )
            elif current in (PayoutStatus.PENDING, PayoutStatus.FAILED):
                payout = self.ledger.mark_processing(payout_id, provider_ids)
                if status == PayoutStatus.COMPLETED:
                    payout = self.ledger.mark_completed(payout_id)
            elif status == PayoutStatus.COMPLETED:
                payout = self.ledger.mark_completed(payout_id, provider_ids)
            elif current != PayoutStatus.PROCESSING:
                raise InvalidTransitionError(
                    f"Cannot move payout from '{current}' to '{status}'",
                    details={
                        "payout_id": str(payout_id),
                        "current_state": current,
                        "target_state": status,
                    },
                )

        self.get_logger().info(
            "Settlement update applied",
            extra={
                "payout_id": str(payout_id),
                "reported_status": status,
                "from_status": current,
                "to_status": payout.status,
            },
        )
        return payout

    # =========================================================================
    # Queries
    # =========================================================================

    def get_payouts_by_operator(
        self, operator_id: uuid.UUID, limit: int = 50
    ) -> list[Payout]:
        return self.ledger.for_operator(operator_id, limit=limit)

    def get_payouts_by_status(
        self,
        status: str,
        operator_id: uuid.UUID | None = None,
        limit: int = 50,
    ) -> list[Payout]:
        return self.ledger.by_status(status, operator_id=operator_id, limit=limit)

    def get_total_payouts(self, operator_id: uuid.UUID) -> dict[str, Any]:
        """{count, gross, fees, net, by_status} for one operator."""
        return self.ledger.totals(operator_id).to_dict()
