"""
Payout services.

Usage:
    from payouts.services import PayoutOrchestrator, PayoutRequest
"""

from payouts.services.ledger import PayoutLedger, PayoutTotals
from payouts.services.orchestrator import (
    MAX_PAYOUT_RETRIES,
    BatchPayoutResult,
    PayoutExecution,
    PayoutOrchestrator,
    PayoutRequest,
)
from payouts.services.registry import PaymentMethodRegistry, mask_account_number

__all__ = [
    "BatchPayoutResult",
    "MAX_PAYOUT_RETRIES",
    "PaymentMethodRegistry",
    "PayoutExecution",
    "PayoutLedger",
    "PayoutOrchestrator",
    "PayoutRequest",
    "PayoutTotals",
    "mask_account_number",
]
