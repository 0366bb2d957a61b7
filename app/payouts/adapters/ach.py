"""
ACH payout adapter backed by Stripe.

An ACH payout is a Stripe Payout from a connected account to a bank
account attached to it. The adapter attaches the operator's bank account
as an external account, then creates a standard (ACH) payout. The
external account id is handed back in TransferResult.destination_updates
so later payouts to the same method skip the attach step. Settlement
takes days, so the result is always "processing"; the final outcome
arrives later through PayoutOrchestrator.apply_settlement_update().

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_PAYOUT_ACCOUNT_ID: Connected account used when the payment
  method does not carry its own stripe_account_id

Usage:
    adapter = AchPayoutAdapter()
    result = adapter.transfer(
        destination=method.get_details(),
        amount=Decimal("500.00"),
        description="Payout for booking 123",
        idempotency_key="payout:<id>:0",
    )
    result.provider_ids  # {"ach_transaction_id": "po_xxx"}
"""

from __future__ import annotations

import hashlib
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from payouts.adapters.base import (
    TRANSFER_PROCESSING,
    PayoutProviderAdapter,
    TransferResult,
)
from payouts.exceptions import ProviderError, ProviderTimeoutError
from payouts.state_machines import PaymentMethodKind

if TYPE_CHECKING:
    from payouts.details import AchDetails


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def bank_account_idempotency_key(account_id: str, destination: AchDetails) -> str:
    """
    Key for attaching a bank account to a connected account.

    Derived from the account numbers rather than the payout attempt, so
    every attempt for the same bank account resolves to one external
    account on Stripe's side.
    """
    fingerprint = hashlib.sha256(
        f"{destination.routing_number}:{destination.account_number}".encode()
    ).hexdigest()
    return f"bank_account:{account_id}:{fingerprint[:32]}"


class AchPayoutAdapter(PayoutProviderAdapter):
    """
    Sends USD to a US bank account with a Stripe standard payout.

    Error mapping:
        RateLimitError, APIConnectionError, APIError -> retryable
        APIConnectionError, APIError while creating the payout ->
            ProviderTimeoutError (the payout may exist)
        CardError, InvalidRequestError, AuthenticationError -> not retryable
    """

    method_kind = PaymentMethodKind.ACH

    def __init__(self, timeout: int | None = None) -> None:
        self.timeout = timeout or getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)

    @property
    def call_budget(self) -> float:
        # Attaching the bank account and creating the payout are two calls
        return 2 * self.timeout

    def _configure_stripe(self) -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    def transfer(
        self,
        destination: AchDetails,
        amount: Decimal,
        description: str,
        idempotency_key: str,
    ) -> TransferResult:
        account_id = destination.stripe_account_id or getattr(
            settings, "STRIPE_PAYOUT_ACCOUNT_ID", ""
        )
        if not account_id:
            raise ProviderError(
                "No Stripe account configured for ACH payouts",
                code="ACH_ACCOUNT_NOT_CONFIGURED",
                retryable=False,
            )

        self._configure_stripe()
        logger = self.get_logger()
        amount_cents = to_cents(amount)

        log_context = {
            "operation": "ach_payout",
            "amount_cents": amount_cents,
            "stripe_account": account_id,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        bank_account_id = destination.stripe_bank_account_id
        destination_updates = {}
        if not bank_account_id:
            # No money moves here, so every Stripe error is definitive
            try:
                bank_account = stripe.Account.create_external_account(
                    account_id,
                    external_account={
                        "object": "bank_account",
                        "country": "US",
                        "currency": "usd",
                        "routing_number": destination.routing_number,
                        "account_number": destination.account_number,
                        "account_holder_type": "company",
                    },
                    idempotency_key=bank_account_idempotency_key(account_id, destination),
                )
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                self._handle_stripe_error(e, log_context, duration_ms)
                raise
            bank_account_id = bank_account.id
            destination_updates["stripe_bank_account_id"] = bank_account_id

        try:
            payout = stripe.Payout.create(
                amount=amount_cents,
                currency="usd",
                method="standard",
                destination=bank_account_id,
                description=description,
                stripe_account=account_id,
                idempotency_key=idempotency_key,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms, outcome_unknown=True)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "payout_id": payout.id,
                "duration_ms": duration_ms,
            },
        )

        return TransferResult(
            provider_transaction_id=payout.id,
            status=TRANSFER_PROCESSING,
            raw_reference={
                "id": payout.id,
                "status": getattr(payout, "status", None),
                "arrival_date": getattr(payout, "arrival_date", None),
                "bank_account": bank_account_id,
            },
            provider_ids={"ach_transaction_id": payout.id},
            destination_updates=destination_updates,
        )

    def _handle_stripe_error(
        self,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
        outcome_unknown: bool = False,
    ) -> None:
        """
        Translate Stripe exceptions to ProviderError.

        Errors that are already ProviderError pass through unchanged. With
        outcome_unknown set, connection failures and Stripe server errors
        raise ProviderTimeoutError: the payout may have been created.
        """
        if isinstance(error, ProviderError):
            return

        logger = self.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise ProviderError(
                str(error.user_message or "Bank account was declined"),
                code="ACH_DECLINED",
                retryable=False,
                details={"stripe_code": error.code},
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            code = (
                "ACH_INVALID_ACCOUNT"
                if "account" in str(error).lower()
                else "ACH_INVALID_REQUEST"
            )
            raise ProviderError(
                str(error.user_message or "Stripe rejected the payout request"),
                code=code,
                retryable=False,
                details={"stripe_code": error.code},
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise ProviderError(
                "Stripe rate limit exceeded. Please retry.",
                code="ACH_RATE_LIMITED",
                retryable=True,
            ) from error

        if outcome_unknown and isinstance(
            error, (stripe.APIConnectionError, stripe.APIError)
        ):
            logger.error(
                "Stripe payout outcome unknown",
                extra=log_context,
                exc_info=True,
            )
            raise ProviderTimeoutError(
                "Stripe did not confirm the payout; outcome unknown",
                code="ACH_PROVIDER_TIMEOUT",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise ProviderError(
                "Could not connect to Stripe. Please retry.",
                code="ACH_PROVIDER_UNAVAILABLE",
                retryable=True,
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise ProviderError(
                "Stripe service error. Please retry.",
                code="ACH_PROVIDER_UNAVAILABLE",
                retryable=True,
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise ProviderError(
                "Stripe authentication failed",
                code="ACH_PROVIDER_AUTH_FAILED",
                retryable=False,
            ) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise ProviderError(
            "Unexpected Stripe error",
            code="ACH_PROVIDER_ERROR",
            retryable=True,
        ) from error
