"""
Payout model for tracking transfers to operators.

A Payout is one outbound transfer instruction from the platform to an
operator's payment method. Its lifecycle is a django-fsm state machine;
PayoutLedger is the only writer.

Usage:
    from payouts.models import Payout
    from payouts.state_machines import PayoutStatus

    payout = Payout.objects.select_for_update().get(id=payout_id)
    payout.start_processing()  # pending/failed -> processing
    payout.save()

    payout.complete()  # processing -> completed
    payout.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from payouts.state_machines import PaymentMethodKind, PayoutStatus

# Nullable provider reference columns; callers must tolerate all but one
# being empty for any given payout.
PROVIDER_ID_FIELDS = (
    "coinbase_transaction_id",
    "ach_transaction_id",
    "blockchain_tx_hash",
    "external_reference",
)


class Payout(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    Represents one transfer of booking funds to an operator.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING/PROCESSING -> FAILED
        FAILED -> FAILED (retry counted)
        FAILED -> PROCESSING (retry dispatched successfully)
        PENDING -> CANCELLED

    Fields:
        operator_id: Receiving operator
        booking_id: Booking the funds come from (nullable for manual payouts)
        payment_method_id: Destination method (weak reference, no FK)
        amount_gross: Amount owed to the operator before fees
        fee_amount: Settlement channel fee
        amount_net: amount_gross - fee_amount, fixed at creation
        currency: usd for ACH and wire, usdc for wallet
        payout_kind: Settlement channel, mirrors the method kind
        status: Current FSM state
        coinbase_transaction_id / ach_transaction_id /
        blockchain_tx_hash / external_reference: provider references
        initiated_at / processed_at / completed_at / failed_at /
        cancelled_at: lifecycle timestamps
        error_code / error_message: Last failure
        retry_count: Retries used (limit enforced by the orchestrator)
        metadata: Booking reference, tour name, fee flags, dispatch errors

    Note:
        The status field is protected, so refresh_from_db() cannot reload
        it. Re-fetch with Payout.objects.get() instead.
    """

    operator_id = models.UUIDField(
        db_index=True,
        help_text="Operator receiving the payout",
    )

    booking_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Booking the payout settles",
    )

    payment_method_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Payment method the payout was sent to (weak reference)",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount_gross = models.DecimalField(
        max_digits=20,
        decimal_places=6,
        help_text="Amount owed before fees",
    )

    fee_amount = models.DecimalField(
        max_digits=20,
        decimal_places=6,
        default=0,
        help_text="Settlement channel fee",
    )

    amount_net = models.DecimalField(
        max_digits=20,
        decimal_places=6,
        help_text="Amount actually transferred (gross - fee)",
    )

    currency = models.CharField(
        max_length=10,
        default="usd",
        help_text="usd for bank rails, usdc for wallet transfers",
    )

    payout_kind = models.CharField(
        max_length=20,
        choices=PaymentMethodKind.choices,
        help_text="Settlement channel used for this payout",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    # ==========================================================================
    # Provider References
    # ==========================================================================

    coinbase_transaction_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Coinbase transaction ID for wallet payouts",
    )

    ach_transaction_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe payout ID (po_xxx) for ACH payouts",
    )

    blockchain_tx_hash = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="On-chain transaction hash for wallet payouts",
    )

    external_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Provider reference for other rails (e.g. wire)",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    initiated_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the payout was requested",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider accepted the transfer",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer settled",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the most recent failure was recorded",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout was cancelled",
    )

    # ==========================================================================
    # Error Info & Retries
    # ==========================================================================

    error_code = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Machine-readable code of the last failure",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Description of the last failure",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of retries attempted",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["operator_id", "status"]),
            models.Index(fields=["booking_id", "status"]),
            models.Index(fields=["status", "created_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_gross__gt=0),
                name="payout_amount_gross_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(fee_amount__gte=0),
                name="payout_fee_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(amount_net__gte=0)
                & models.Q(amount_net__lte=models.F("amount_gross")),
                name="payout_amount_net_within_gross",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.id}, {self.status}, {self.amount_net} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.FAILED],
        target=PayoutStatus.PROCESSING,
    )
    def start_processing(self):
        """
        Record that the provider accepted the transfer.

        Transition: PENDING/FAILED -> PROCESSING
        """
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=PayoutStatus.PROCESSING,
        target=PayoutStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark the transfer as settled.

        Transition: PROCESSING -> COMPLETED

        There is deliberately no PENDING -> COMPLETED edge.
        """
        if self.completed_at is None:
            self.completed_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutStatus.PENDING, PayoutStatus.PROCESSING, PayoutStatus.FAILED],
        target=PayoutStatus.FAILED,
    )
    def fail(self, error_code: str, error_message: str | None = None):
        """
        Record a failed attempt.

        Transition: PENDING/PROCESSING/FAILED -> FAILED

        Does not touch retry_count.
        """
        self.failed_at = timezone.now()
        self.error_code = error_code
        self.error_message = error_message

    @transition(
        field=status,
        source=PayoutStatus.FAILED,
        target=PayoutStatus.FAILED,
    )
    def record_retry(self):
        """
        Count one retry attempt.

        Transition: FAILED -> FAILED
        """
        self.retry_count += 1

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.CANCELLED,
    )
    def cancel(self, reason: str | None = None):
        """
        Cancel a payout that was never dispatched.

        Transition: PENDING -> CANCELLED
        """
        self.cancelled_at = timezone.now()
        if reason:
            self.merge_meta({"cancel_reason": reason})

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def merge_provider_ids(self, provider_ids: dict[str, str | None] | None) -> list[str]:
        """
        Copy non-null provider references onto the payout.

        A retry may supply a new id while an id from an earlier attempt is
        kept when not overwritten.

        Returns:
            Names of the fields that changed
        """
        changed = []
        for field_name, value in (provider_ids or {}).items():
            if field_name not in PROVIDER_ID_FIELDS:
                raise ValueError(f"Unknown provider id field: {field_name}")
            if value is not None and getattr(self, field_name) != value:
                setattr(self, field_name, value)
                changed.append(field_name)
        return changed

    @property
    def has_provider_reference(self) -> bool:
        return any(getattr(self, name) for name in PROVIDER_ID_FIELDS)

    @property
    def dispatch_started(self) -> bool:
        """Whether any attempt was sent toward a provider."""
        return bool(
            self.has_provider_reference
            or self.get_meta("last_dispatch")
            or self.get_meta("last_dispatch_error")
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in PayoutStatus.terminal()

    @property
    def can_retry(self) -> bool:
        return self.status == PayoutStatus.FAILED

    @property
    def can_cancel(self) -> bool:
        return self.status == PayoutStatus.PENDING and not self.dispatch_started
