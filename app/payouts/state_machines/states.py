"""
State enums for payout models.

These are Django TextChoices for database storage.

State Machines Overview:

Payout States:
    pending → processing → completed
    pending → failed, processing → failed
    failed → processing (retry)
    pending → cancelled

PaymentMethod States:
    pending_verification → active (verified)
    pending_verification → rejected (verification failed)
    active ↔ inactive (explicit lifecycle change)
"""

from django.db import models


class PayoutStatus(models.TextChoices):
    """
    States for the Payout model lifecycle.

    Terminal states: COMPLETED, CANCELLED
    FAILED is not terminal: a failed payout can be retried, bounded by
    the orchestrator's retry limit.

    State Flow:
        PENDING → PROCESSING → COMPLETED
        PENDING/PROCESSING → FAILED → PROCESSING (retry)
        PENDING → CANCELLED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"

    @classmethod
    def terminal(cls) -> list[str]:
        return [cls.COMPLETED, cls.CANCELLED]

    @classmethod
    def outstanding(cls) -> list[str]:
        """States in which a payout still blocks a new one for the same booking."""
        return [cls.PENDING, cls.PROCESSING, cls.FAILED]


class PaymentMethodKind(models.TextChoices):
    """
    Settlement channel a payment method (and therefore a payout) uses.

    ACH and WIRE settle in USD; WALLET settles in USDC.
    """

    ACH = "ach", "ACH Bank Transfer"
    WALLET = "wallet", "Crypto Wallet"
    WIRE = "wire", "Bank Wire"


class PaymentMethodStatus(models.TextChoices):
    """
    Lifecycle of an operator payment method.

    Only ACTIVE methods can receive payouts.
    """

    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    PENDING_VERIFICATION = "pending_verification", "Pending Verification"
    REJECTED = "rejected", "Rejected"


class VerificationStatus(models.TextChoices):
    """Outcome of verifying that an operator controls a payment method."""

    PENDING = "pending", "Pending"
    VERIFIED = "verified", "Verified"
    FAILED = "failed", "Failed"
    MANUAL_REVIEW = "manual_review", "Manual Review"


class AchAccountType(models.TextChoices):
    CHECKING = "checking", "Checking"
    SAVINGS = "savings", "Savings"
