"""
PaymentMethod model for operator payout destinations.

A PaymentMethod is where an operator wants to receive money: a US bank
account (ACH), a crypto wallet, or a bank account reached by wire. The
kind-specific coordinates live in one JSON document; use get_details()
for the typed view.

Usage:
    from payouts.models import PaymentMethod

    method = PaymentMethod.objects.get(id=method_id)
    details = method.get_details()  # AchDetails | WalletDetails | WireDetails
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payouts.details import parse_details
from payouts.state_machines import (
    PaymentMethodKind,
    PaymentMethodStatus,
    VerificationStatus,
)

if TYPE_CHECKING:
    from payouts.details import PaymentMethodDetails


class PaymentMethod(UUIDPrimaryKeyMixin, BaseModel):
    """
    Operator payout destination.

    Fields:
        operator_id: Owning operator (external entity, no foreign key)
        method_kind: Settlement channel (ach, wallet, wire)
        is_primary: Default destination when a payout names no method
        status: Lifecycle status; only active methods receive payouts
        verification_status: Outcome of ownership verification
        verification_method: How verification happened (plaid, micro_deposit, manual)
        verified_at: When the last verification outcome was recorded
        details: Kind-specific payload (see payouts.details)
        last_used_at: When a payout last went out through this method

    Note:
        At most one primary method per operator, enforced by a partial
        unique constraint. Use PaymentMethodRegistry.set_primary() to
        switch primaries.
    """

    operator_id = models.UUIDField(
        db_index=True,
        help_text="Operator that owns this payment method",
    )

    method_kind = models.CharField(
        max_length=20,
        choices=PaymentMethodKind.choices,
        help_text="Settlement channel used for payouts to this method",
    )

    is_primary = models.BooleanField(
        default=False,
        help_text="Whether this is the operator's default payout method",
    )

    status = models.CharField(
        max_length=30,
        choices=PaymentMethodStatus.choices,
        default=PaymentMethodStatus.PENDING_VERIFICATION,
        db_index=True,
        help_text="Lifecycle status of the payment method",
    )

    # ==========================================================================
    # Verification
    # ==========================================================================

    verification_status = models.CharField(
        max_length=20,
        choices=VerificationStatus.choices,
        default=VerificationStatus.PENDING,
        help_text="Outcome of ownership verification",
    )

    verification_method = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        help_text="How the method was verified (plaid, micro_deposit, manual)",
    )

    verified_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the verification outcome was recorded",
    )

    # ==========================================================================
    # Details & Usage
    # ==========================================================================

    details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Kind-specific settlement coordinates",
    )

    last_used_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a payout was last sent to this method",
    )

    class Meta:
        ordering = ["-is_primary", "-created_at"]
        verbose_name = "Payment Method"
        verbose_name_plural = "Payment Methods"
        indexes = [
            models.Index(fields=["operator_id", "method_kind", "status"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["operator_id"],
                condition=models.Q(is_primary=True),
                name="payment_method_one_primary_per_operator",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentMethod({self.id}, {self.method_kind}, {self.status})"

    def get_details(self) -> PaymentMethodDetails:
        """Typed view of the stored details payload."""
        return parse_details(self.method_kind, self.details, validate=False)

    @property
    def is_active(self) -> bool:
        return self.status == PaymentMethodStatus.ACTIVE
