"""
Bank wire payout adapter.

No wire provider is integrated yet. The adapter keeps the channel
routable and validated end to end, and fails every transfer with a
non-retryable error so payouts land in "failed" for manual handling.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from payouts.adapters.base import PayoutProviderAdapter, TransferResult
from payouts.exceptions import ProviderError
from payouts.state_machines import PaymentMethodKind

if TYPE_CHECKING:
    from payouts.details import WireDetails


class WireTransferAdapter(PayoutProviderAdapter):
    method_kind = PaymentMethodKind.WIRE

    def transfer(
        self,
        destination: WireDetails,
        amount: Decimal,
        description: str,
        idempotency_key: str,
    ) -> TransferResult:
        self.get_logger().warning(
            "Wire transfer requested but not implemented",
            extra={"idempotency_key": idempotency_key},
        )
        raise ProviderError(
            "Bank wire payouts are not implemented",
            code="WIRE_NOT_IMPLEMENTED",
            retryable=False,
        )
