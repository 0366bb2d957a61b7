"""
State machine enums for payout models.

This module defines the state enums used by payout models with django-fsm.
"""

from payouts.state_machines.states import (
    AchAccountType,
    PaymentMethodKind,
    PaymentMethodStatus,
    PayoutStatus,
    VerificationStatus,
)

__all__ = [
    "AchAccountType",
    "PaymentMethodKind",
    "PaymentMethodStatus",
    "PayoutStatus",
    "VerificationStatus",
]
