"""
Provider adapter contract.

Every settlement channel is wrapped in an adapter with one operation,
transfer(), so the router and orchestrator never see provider SDKs.

Contract:
    - Success returns a TransferResult
    - Any failure raises ProviderError with a code and a retryable flag
    - Adapters never touch the database; the ledger records the outcome
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from payouts.details import PaymentMethodDetails

# Result statuses an adapter may report
TRANSFER_PROCESSING = "processing"
TRANSFER_COMPLETED = "completed"


@dataclass
class TransferResult:
    """
    Outcome of a transfer the provider accepted.

    Attributes:
        provider_transaction_id: Provider's id for the transfer
        status: "processing" (settles later) or "completed" (already settled)
        raw_reference: Provider response, for debugging
        provider_ids: Values for the payout's provider reference columns
        destination_updates: Provider-side ids to store on the payment
            method's details so later transfers can reuse them
    """

    provider_transaction_id: str
    status: str = TRANSFER_PROCESSING
    raw_reference: dict[str, Any] = field(default_factory=dict)
    provider_ids: dict[str, str | None] = field(default_factory=dict)
    destination_updates: dict[str, str] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.status == TRANSFER_COMPLETED


class PayoutProviderAdapter(ABC):
    """
    Abstract base class for settlement channel adapters.

    Usage:
        class ChequeAdapter(PayoutProviderAdapter):
            method_kind = "cheque"

            def transfer(self, destination, amount, description, idempotency_key):
                ...
                return TransferResult(provider_transaction_id=ref)
    """

    method_kind: str = ""

    @property
    def call_budget(self) -> float | None:
        """
        Longest a transfer() can take before the adapter gives up on its
        own, in seconds. None when the adapter has no bound of its own.
        """
        return None

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @abstractmethod
    def transfer(
        self,
        destination: PaymentMethodDetails,
        amount: Decimal,
        description: str,
        idempotency_key: str,
    ) -> TransferResult:
        """
        Send amount to destination.

        Args:
            destination: Typed details of the operator's payment method
            amount: Net amount to send, in the channel's currency
            description: Human-readable reference shown by the provider
            idempotency_key: Key that makes a repeated attempt safe

        Returns:
            TransferResult for an accepted transfer

        Raises:
            ProviderError: The transfer was rejected or failed
        """
