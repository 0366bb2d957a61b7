"""
Payout domain models.

- PaymentMethod: Operator payout destinations (ACH, wallet, wire)
- Payout: Transfers to operators with a django-fsm lifecycle
"""

from payouts.models.payment_method import PaymentMethod
from payouts.models.payout import PROVIDER_ID_FIELDS, Payout

__all__ = [
    "PROVIDER_ID_FIELDS",
    "PaymentMethod",
    "Payout",
]
