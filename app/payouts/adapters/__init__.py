"""
Settlement channel adapters.

Usage:
    from payouts.adapters import AchPayoutAdapter, TransferResult
"""

from payouts.adapters.ach import AchPayoutAdapter
from payouts.adapters.base import (
    TRANSFER_COMPLETED,
    TRANSFER_PROCESSING,
    PayoutProviderAdapter,
    TransferResult,
)
from payouts.adapters.wallet import WalletPayoutAdapter
from payouts.adapters.wire import WireTransferAdapter

__all__ = [
    "AchPayoutAdapter",
    "PayoutProviderAdapter",
    "TRANSFER_COMPLETED",
    "TRANSFER_PROCESSING",
    "TransferResult",
    "WalletPayoutAdapter",
    "WireTransferAdapter",
]
