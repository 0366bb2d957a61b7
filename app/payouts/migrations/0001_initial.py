"""
Initial payouts schema.

Changes:
    - Create PaymentMethod with a one-primary-per-operator constraint
    - Create Payout with django-fsm status and amount check constraints
"""

import uuid

import django.utils.timezone
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PaymentMethod",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "operator_id",
                    models.UUIDField(
                        db_index=True,
                        help_text="Operator that owns this payment method",
                    ),
                ),
                (
                    "method_kind",
                    models.CharField(
                        choices=[
                            ("ach", "ACH Bank Transfer"),
                            ("wallet", "Crypto Wallet"),
                            ("wire", "Bank Wire"),
                        ],
                        help_text="Settlement channel used for payouts to this method",
                        max_length=20,
                    ),
                ),
                (
                    "is_primary",
                    models.BooleanField(
                        default=False,
                        help_text="Whether this is the operator's default payout method",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("inactive", "Inactive"),
                            ("pending_verification", "Pending Verification"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="pending_verification",
                        help_text="Lifecycle status of the payment method",
                        max_length=30,
                    ),
                ),
                (
                    "verification_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("verified", "Verified"),
                            ("failed", "Failed"),
                            ("manual_review", "Manual Review"),
                        ],
                        default="pending",
                        help_text="Outcome of ownership verification",
                        max_length=20,
                    ),
                ),
                (
                    "verification_method",
                    models.CharField(
                        blank=True,
                        help_text="How the method was verified (plaid, micro_deposit, manual)",
                        max_length=50,
                        null=True,
                    ),
                ),
                (
                    "verified_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the verification outcome was recorded",
                        null=True,
                    ),
                ),
                (
                    "details",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Kind-specific settlement coordinates",
                    ),
                ),
                (
                    "last_used_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When a payout was last sent to this method",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Method",
                "verbose_name_plural": "Payment Methods",
                "ordering": ["-is_primary", "-created_at"],
                "indexes": [
                    models.Index(
                        fields=["operator_id", "method_kind", "status"],
                        name="payouts_pay_operato_5c1a2e_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_primary", True)),
                        fields=("operator_id",),
                        name="payment_method_one_primary_per_operator",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Flexible key-value metadata storage",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "operator_id",
                    models.UUIDField(
                        db_index=True,
                        help_text="Operator receiving the payout",
                    ),
                ),
                (
                    "booking_id",
                    models.UUIDField(
                        blank=True,
                        db_index=True,
                        help_text="Booking the payout settles",
                        null=True,
                    ),
                ),
                (
                    "payment_method_id",
                    models.UUIDField(
                        blank=True,
                        help_text="Payment method the payout was sent to (weak reference)",
                        null=True,
                    ),
                ),
                (
                    "amount_gross",
                    models.DecimalField(
                        decimal_places=6,
                        help_text="Amount owed before fees",
                        max_digits=20,
                    ),
                ),
                (
                    "fee_amount",
                    models.DecimalField(
                        decimal_places=6,
                        default=0,
                        help_text="Settlement channel fee",
                        max_digits=20,
                    ),
                ),
                (
                    "amount_net",
                    models.DecimalField(
                        decimal_places=6,
                        help_text="Amount actually transferred (gross - fee)",
                        max_digits=20,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="usd for bank rails, usdc for wallet transfers",
                        max_length=10,
                    ),
                ),
                (
                    "payout_kind",
                    models.CharField(
                        choices=[
                            ("ach", "ACH Bank Transfer"),
                            ("wallet", "Crypto Wallet"),
                            ("wire", "Bank Wire"),
                        ],
                        help_text="Settlement channel used for this payout",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "coinbase_transaction_id",
                    models.CharField(
                        blank=True,
                        help_text="Coinbase transaction ID for wallet payouts",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "ach_transaction_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe payout ID (po_xxx) for ACH payouts",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "blockchain_tx_hash",
                    models.CharField(
                        blank=True,
                        help_text="On-chain transaction hash for wallet payouts",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "external_reference",
                    models.CharField(
                        blank=True,
                        help_text="Provider reference for other rails (e.g. wire)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "initiated_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the payout was requested",
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the provider accepted the transfer",
                        null=True,
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the transfer settled",
                        null=True,
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the most recent failure was recorded",
                        null=True,
                    ),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the payout was cancelled",
                        null=True,
                    ),
                ),
                (
                    "error_code",
                    models.CharField(
                        blank=True,
                        help_text="Machine-readable code of the last failure",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Description of the last failure",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of retries attempted",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["operator_id", "status"],
                        name="payouts_pay_operato_8d41b0_idx",
                    ),
                    models.Index(
                        fields=["booking_id", "status"],
                        name="payouts_pay_booking_2f7c19_idx",
                    ),
                    models.Index(
                        fields=["status", "created_at"],
                        name="payouts_pay_status_a93e5d_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_gross__gt", 0)),
                        name="payout_amount_gross_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("fee_amount__gte", 0)),
                        name="payout_fee_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("amount_net__gte", 0),
                            ("amount_net__lte", models.F("amount_gross")),
                        ),
                        name="payout_amount_net_within_gross",
                    ),
                ],
            },
        ),
    ]
