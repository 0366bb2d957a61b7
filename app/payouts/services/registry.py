"""
Operator payment method registry.

Stores and retrieves the destinations operators get paid to, enforces
one primary method per operator and records verification outcomes.
Account numbers never leave this module unmasked in logs.

Usage:
    from payouts.services import PaymentMethodRegistry

    registry = PaymentMethodRegistry()
    method = registry.add(
        operator_id,
        "ach",
        {
            "routing_number": "021000021",
            "account_number": "000123456789",
            "account_type": "checking",
            "bank_name": "Chase",
        },
        is_primary=True,
    )
    registry.update_verification(method.id, "verified", method_name="plaid")
    registry.display(method)["details"]["account_number"]  # "****6789"
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService

from payouts.details import parse_details
from payouts.exceptions import PaymentMethodNotFoundError
from payouts.models import PaymentMethod
from payouts.state_machines import (
    PaymentMethodStatus,
    VerificationStatus,
)

if TYPE_CHECKING:
    import uuid
    from typing import Any

    from django.db.models import QuerySet

# Payload fields that hold a full account identifier
MASKED_FIELDS = ("account_number", "iban")


def mask_account_number(value: str | None) -> str | None:
    """Show only the last four characters: "****6789"."""
    if value is None:
        return None
    value = str(value)
    if len(value) < 4:
        return "****"
    return "****" + value[-4:]


class PaymentMethodRegistry(BaseService):
    """
    Service for operator payment methods.

    Primary switching locks every method row of the operator with
    select_for_update() so concurrent set_primary() calls serialize and
    exactly one primary remains.
    """

    # =========================================================================
    # Creation
    # =========================================================================

    def add(
        self,
        operator_id: uuid.UUID,
        kind: str,
        payload: dict[str, Any],
        is_primary: bool = False,
    ) -> PaymentMethod:
        """
        Register a new payment method.

        The method starts pending verification and cannot receive payouts
        until update_verification() records a verified outcome.

        Raises:
            PaymentMethodValidationError: Unknown kind, missing field or
                malformed value
        """
        details = parse_details(kind, payload)

        with self.atomic():
            method = PaymentMethod.objects.create(
                operator_id=operator_id,
                method_kind=kind,
                details=details.to_dict(),
            )
            if is_primary:
                self._switch_primary(method.id, operator_id)
                method.is_primary = True

        self.get_logger().info(
            "Payment method added",
            extra={
                "payment_method_id": str(method.id),
                "operator_id": str(operator_id),
                "method_kind": kind,
                "is_primary": is_primary,
            },
        )
        return method

    # =========================================================================
    # Primary Selection
    # =========================================================================

    def set_primary(self, method_id: uuid.UUID, operator_id: uuid.UUID) -> PaymentMethod:
        """
        Make method_id the operator's only primary method.

        Idempotent: calling it again for the current primary changes nothing.

        Raises:
            PaymentMethodNotFoundError: Method missing or owned by another operator
        """
        with self.atomic():
            method = self._switch_primary(method_id, operator_id)

        self.get_logger().info(
            "Primary payment method changed",
            extra={"payment_method_id": str(method_id), "operator_id": str(operator_id)},
        )
        return method

    def _switch_primary(self, method_id: uuid.UUID, operator_id: uuid.UUID) -> PaymentMethod:
        # Must run inside a transaction; the row locks are held until it ends.
        methods = list(
            PaymentMethod.objects.select_for_update()
            .filter(operator_id=operator_id)
            .order_by("id")
        )
        target = next((m for m in methods if m.id == method_id), None)
        if target is None:
            raise PaymentMethodNotFoundError(
                f"Payment method {method_id} not found",
                details={"payment_method_id": str(method_id)},
            )

        PaymentMethod.objects.filter(operator_id=operator_id, is_primary=True).exclude(
            id=method_id
        ).update(is_primary=False, updated_at=timezone.now())

        if not target.is_primary:
            target.is_primary = True
            target.save(update_fields=["is_primary", "updated_at"])
        return target

    def get_primary(self, operator_id: uuid.UUID) -> PaymentMethod | None:
        """The operator's primary method, if it is active."""
        return PaymentMethod.objects.filter(
            operator_id=operator_id,
            is_primary=True,
            status=PaymentMethodStatus.ACTIVE,
        ).first()

    # =========================================================================
    # Lookups
    # =========================================================================

    def get(self, method_id: uuid.UUID, operator_id: uuid.UUID | None = None) -> PaymentMethod:
        """
        Raises:
            PaymentMethodNotFoundError: Method missing, or operator_id given
                and the method belongs to someone else
        """
        queryset = PaymentMethod.objects.filter(id=method_id)
        if operator_id is not None:
            queryset = queryset.filter(operator_id=operator_id)
        method = queryset.first()
        if method is None:
            raise PaymentMethodNotFoundError(
                f"Payment method {method_id} not found",
                details={"payment_method_id": str(method_id)},
            )
        return method

    def list_for_operator(self, operator_id: uuid.UUID) -> QuerySet[PaymentMethod]:
        """All of an operator's methods, primary first, newest first."""
        return PaymentMethod.objects.filter(operator_id=operator_id).order_by(
            "-is_primary", "-created_at"
        )

    def find_by_kind(self, operator_id: uuid.UUID, kind: str) -> QuerySet[PaymentMethod]:
        """Active methods of one kind."""
        return PaymentMethod.objects.filter(
            operator_id=operator_id,
            method_kind=kind,
            status=PaymentMethodStatus.ACTIVE,
        ).order_by("-is_primary", "-created_at")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def update_verification(
        self,
        method_id: uuid.UUID,
        outcome: str,
        method_name: str | None = None,
    ) -> PaymentMethod:
        """
        Record a verification outcome.

        verified activates the method, failed rejects it, pending and
        manual_review leave the status as it is.

        Raises:
            ValidationError: Unknown outcome
            PaymentMethodNotFoundError: Method missing
        """
        if outcome not in VerificationStatus.values:
            raise ValidationError(
                f"Unknown verification outcome: {outcome}",
                details={"outcome": outcome},
            )

        with self.atomic():
            method = self._get_for_update(method_id)
            method.verification_status = outcome
            method.verification_method = method_name
            method.verified_at = timezone.now()
            if outcome == VerificationStatus.VERIFIED:
                method.status = PaymentMethodStatus.ACTIVE
            elif outcome == VerificationStatus.FAILED:
                method.status = PaymentMethodStatus.REJECTED
            method.save(
                update_fields=[
                    "verification_status",
                    "verification_method",
                    "verified_at",
                    "status",
                    "updated_at",
                ]
            )

        self.get_logger().info(
            "Payment method verification updated",
            extra={
                "payment_method_id": str(method_id),
                "outcome": outcome,
                "status": method.status,
            },
        )
        return method

    def update_status(self, method_id: uuid.UUID, status: str) -> PaymentMethod:
        """
        Change a method's lifecycle status directly.

        A method that stops being active also stops being primary.

        Raises:
            ValidationError: Unknown status
            PaymentMethodNotFoundError: Method missing
        """
        if status not in PaymentMethodStatus.values:
            raise ValidationError(
                f"Unknown payment method status: {status}",
                details={"status": status},
            )

        with self.atomic():
            method = self._get_for_update(method_id)
            method.status = status
            if status != PaymentMethodStatus.ACTIVE:
                method.is_primary = False
            method.save(update_fields=["status", "is_primary", "updated_at"])

        self.get_logger().info(
            "Payment method status updated",
            extra={"payment_method_id": str(method_id), "status": status},
        )
        return method

    def mark_used(self, method_id: uuid.UUID) -> None:
        PaymentMethod.objects.filter(id=method_id).update(
            last_used_at=timezone.now(),
            updated_at=timezone.now(),
        )

    def update_details(self, method_id: uuid.UUID, values: dict[str, Any]) -> PaymentMethod:
        """
        Merge provider-issued values into a method's stored details.

        Keys the method's details type does not know are dropped.

        Raises:
            PaymentMethodNotFoundError: Method missing
        """
        with self.atomic():
            method = self._get_for_update(method_id)
            merged = {**method.details, **values}
            method.details = parse_details(
                method.method_kind, merged, validate=False
            ).to_dict()
            method.save(update_fields=["details", "updated_at"])

        self.get_logger().info(
            "Payment method details updated",
            extra={"payment_method_id": str(method_id), "fields": sorted(values)},
        )
        return method

    def remove(self, method_id: uuid.UUID, operator_id: uuid.UUID) -> None:
        """
        Delete a payment method.

        Payouts keep their payment_method_id; nothing cascades.

        Raises:
            PaymentMethodNotFoundError: Method missing or owned by another operator
        """
        deleted, _ = PaymentMethod.objects.filter(
            id=method_id, operator_id=operator_id
        ).delete()
        if not deleted:
            raise PaymentMethodNotFoundError(
                f"Payment method {method_id} not found",
                details={"payment_method_id": str(method_id)},
            )

        self.get_logger().info(
            "Payment method removed",
            extra={"payment_method_id": str(method_id), "operator_id": str(operator_id)},
        )

    def _get_for_update(self, method_id: uuid.UUID) -> PaymentMethod:
        method = PaymentMethod.objects.select_for_update().filter(id=method_id).first()
        if method is None:
            raise PaymentMethodNotFoundError(
                f"Payment method {method_id} not found",
                details={"payment_method_id": str(method_id)},
            )
        return method

    # =========================================================================
    # Display
    # =========================================================================

    @staticmethod
    def mask(payload: dict[str, Any]) -> dict[str, Any]:
        """Copy of a details payload with account identifiers masked."""
        masked = dict(payload)
        for field_name in MASKED_FIELDS:
            if masked.get(field_name):
                masked[field_name] = mask_account_number(masked[field_name])
        return masked

    @staticmethod
    def mask_account_number(value: str | None) -> str | None:
        return mask_account_number(value)

    def display(self, method: PaymentMethod) -> dict[str, Any]:
        """Safe representation of a method for API responses and logs."""
        return {
            "id": str(method.id),
            "operator_id": str(method.operator_id),
            "method_kind": method.method_kind,
            "is_primary": method.is_primary,
            "status": method.status,
            "verification_status": method.verification_status,
            "verification_method": method.verification_method,
            "verified_at": method.verified_at.isoformat() if method.verified_at else None,
            "last_used_at": method.last_used_at.isoformat() if method.last_used_at else None,
            "details": self.mask(method.details or {}),
        }
