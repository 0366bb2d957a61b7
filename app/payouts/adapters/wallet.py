"""
Wallet payout adapter backed by the Coinbase send API.

Sends USDC from the platform escrow wallet to the operator's wallet
address. Transfers confirm within seconds, so a successful send is
usually reported as "completed".

Configuration (via settings):
- COINBASE_API_KEY: Bearer token for the Coinbase API
- COINBASE_API_URL: API base URL (default: https://api.coinbase.com/v2)
- ESCROW_WALLET_ID: Account id of the escrow wallet funding payouts
- COINBASE_API_TIMEOUT_SECONDS: Request timeout (default: 15)

Usage:
    adapter = WalletPayoutAdapter()
    result = adapter.transfer(
        destination=method.get_details(),
        amount=Decimal("98.900000"),
        description="Payout for booking 123",
        idempotency_key="payout:<id>:0",
    )
    result.provider_ids  # {"coinbase_transaction_id": ..., "blockchain_tx_hash": ...}
"""

from __future__ import annotations

import time
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, Any

import requests
from django.conf import settings

from payouts.adapters.base import (
    TRANSFER_COMPLETED,
    TRANSFER_PROCESSING,
    PayoutProviderAdapter,
    TransferResult,
)
from payouts.exceptions import ProviderError, ProviderTimeoutError
from payouts.state_machines import PaymentMethodKind

if TYPE_CHECKING:
    from payouts.details import WalletDetails

USDC_DECIMALS = 6

# Coinbase transaction status -> TransferResult status
_STATUS_MAP = {
    "completed": TRANSFER_COMPLETED,
    "pending": TRANSFER_PROCESSING,
    "waiting_for_signature": TRANSFER_PROCESSING,
    "waiting_for_clearing": TRANSFER_PROCESSING,
}

_FAILED_STATUSES = {"failed", "canceled", "expired"}


def to_smallest_units(amount: Decimal, decimals: int = USDC_DECIMALS) -> int:
    """Convert a token amount to an integer count of its smallest unit."""
    scaled = Decimal(amount).scaleb(decimals)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_DOWN))


def from_smallest_units(units: int, decimals: int = USDC_DECIMALS) -> str:
    return f"{Decimal(units).scaleb(-decimals):.{decimals}f}"


class WalletPayoutAdapter(PayoutProviderAdapter):
    """
    Sends USDC to an operator wallet with a Coinbase "send" transaction.

    Error mapping:
        Connect timeouts, HTTP 429 and 503 -> retryable
        Read timeouts, dropped connections, other 5xx -> ProviderTimeoutError
            (the send may have gone through)
        Other HTTP 4xx, failed/canceled transactions -> not retryable
    """

    method_kind = PaymentMethodKind.WALLET

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        escrow_wallet_id: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = (api_url or settings.COINBASE_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.COINBASE_API_KEY
        self.escrow_wallet_id = (
            escrow_wallet_id
            if escrow_wallet_id is not None
            else settings.ESCROW_WALLET_ID
        )
        self.timeout = timeout or settings.COINBASE_API_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    @property
    def call_budget(self) -> float:
        return self.timeout

    def transfer(
        self,
        destination: WalletDetails,
        amount: Decimal,
        description: str,
        idempotency_key: str,
    ) -> TransferResult:
        if not self.escrow_wallet_id:
            raise ProviderError(
                "Escrow wallet is not configured",
                code="WALLET_NOT_CONFIGURED",
                retryable=False,
            )

        units = to_smallest_units(amount)
        if units <= 0:
            raise ProviderError(
                "Wallet payout amount rounds to zero",
                code="WALLET_AMOUNT_TOO_SMALL",
                retryable=False,
            )

        logger = self.get_logger()
        url = f"{self.api_url}/accounts/{self.escrow_wallet_id}/transactions"
        payload = {
            "type": "send",
            "to": destination.wallet_address,
            "amount": from_smallest_units(units),
            "currency": "USDC",
            "network": destination.network,
            "description": description,
            "idem": idempotency_key,
        }
        log_context = {
            "operation": "wallet_send",
            "amount_units": units,
            "network": destination.network,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Coinbase operation", extra=log_context)

        try:
            response = self.session.post(
                url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.ConnectTimeout as e:
            # Connection never established; nothing reached Coinbase
            logger.error(
                "Connection to Coinbase timed out",
                extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
            )
            raise ProviderError(
                "Could not reach Coinbase. Please retry.",
                code="WALLET_PROVIDER_UNAVAILABLE",
                retryable=True,
            ) from e
        except (requests.ConnectionError, requests.Timeout) as e:
            # The send may have been accepted before the connection dropped
            logger.error(
                "Coinbase outcome unknown after connection error",
                extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
            )
            raise ProviderTimeoutError(
                "Coinbase did not confirm the transfer; outcome unknown",
                code="WALLET_PROVIDER_TIMEOUT",
                details={"timeout": self.timeout},
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        data = self._parse_response(response, {**log_context, "duration_ms": duration_ms})

        transaction = data.get("data") or {}
        transaction_id = transaction.get("id")
        provider_status = (transaction.get("status") or "").lower()
        tx_hash = (transaction.get("network") or {}).get("hash")

        if not transaction_id:
            raise ProviderError(
                "Coinbase response did not include a transaction id",
                code="WALLET_INVALID_RESPONSE",
                retryable=False,
            )

        if provider_status in _FAILED_STATUSES:
            logger.warning(
                "Coinbase rejected wallet transfer",
                extra={**log_context, "provider_status": provider_status},
            )
            raise ProviderError(
                f"Wallet transfer {provider_status}",
                code="WALLET_TRANSFER_FAILED",
                retryable=False,
                details={"coinbase_transaction_id": transaction_id},
            )

        status = _STATUS_MAP.get(provider_status, TRANSFER_PROCESSING)

        logger.info(
            "Coinbase operation completed",
            extra={
                **log_context,
                "coinbase_transaction_id": transaction_id,
                "provider_status": provider_status,
                "duration_ms": duration_ms,
            },
        )

        return TransferResult(
            provider_transaction_id=transaction_id,
            status=status,
            raw_reference=transaction,
            provider_ids={
                "coinbase_transaction_id": transaction_id,
                "blockchain_tx_hash": tx_hash,
            },
        )

    def _parse_response(
        self,
        response: requests.Response,
        log_context: dict[str, Any],
    ) -> dict[str, Any]:
        """Return the JSON body of a successful response or raise ProviderError."""
        logger = self.get_logger()
        status_code = response.status_code

        if status_code in (429, 503):
            logger.warning(
                "Coinbase temporarily unavailable",
                extra={**log_context, "status_code": status_code},
            )
            raise ProviderError(
                f"Coinbase returned HTTP {status_code}. Please retry.",
                code="WALLET_PROVIDER_UNAVAILABLE",
                retryable=True,
                details={"status_code": status_code},
            )

        if status_code >= 500:
            # Coinbase may have queued the send before failing
            logger.error(
                "Coinbase server error, outcome unknown",
                extra={**log_context, "status_code": status_code},
            )
            raise ProviderTimeoutError(
                f"Coinbase returned HTTP {status_code}; outcome unknown",
                code="WALLET_PROVIDER_TIMEOUT",
                details={"status_code": status_code},
            )

        if status_code >= 400:
            message = f"Coinbase rejected the transfer (HTTP {status_code})"
            try:
                errors = response.json().get("errors") or []
                if errors:
                    message = errors[0].get("message") or message
            except ValueError:
                pass
            logger.error(
                "Coinbase rejected wallet transfer",
                extra={**log_context, "status_code": status_code},
            )
            raise ProviderError(
                message,
                code="WALLET_TRANSFER_REJECTED",
                retryable=False,
                details={"status_code": status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                "Coinbase returned an unreadable response",
                code="WALLET_INVALID_RESPONSE",
                retryable=False,
            ) from e
