"""
Payout ledger: the only writer of Payout rows.

Every mutation re-reads the payout with select_for_update() inside a
transaction, applies one django-fsm transition and saves only the fields
that transition touches. Amount columns are written once, at creation.

Usage:
    from payouts.services import PayoutLedger

    ledger = PayoutLedger()
    payout = ledger.create(
        operator_id=operator_id,
        booking_id=booking_id,
        payment_method_id=method.id,
        payout_kind="ach",
        amount_gross=Decimal("500.00"),
        fee_amount=Decimal("0.00"),
        currency="usd",
    )
    payout = ledger.mark_processing(payout.id, {"ach_transaction_id": "po_123"})
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db.models import Count, Sum
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.services import BaseService

from payouts.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    PayoutNotFoundError,
)
from payouts.models import Payout
from payouts.state_machines import PayoutStatus

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import datetime
    from typing import Any

    from django.db.models import QuerySet

DEFAULT_QUERY_LIMIT = 50


@dataclass
class PayoutTotals:
    """
    Aggregate payout figures for one operator.

    Attributes:
        count: Number of payouts
        gross / fees / net: Sums over all payouts
        by_status: {status: {"count": n, "net": Decimal}}
    """

    count: int = 0
    gross: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    net: Decimal = Decimal("0")
    by_status: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "gross": self.gross,
            "fees": self.fees,
            "net": self.net,
            "by_status": self.by_status,
        }


class PayoutLedger(BaseService):
    """
    Service owning the payout state machine.

    State Flow:
        create -> PENDING
        mark_processing: PENDING/FAILED -> PROCESSING
        mark_completed: PROCESSING -> COMPLETED
        mark_failed: PENDING/PROCESSING/FAILED -> FAILED
        increment_retry: FAILED -> FAILED
        cancel: PENDING -> CANCELLED

    Re-entering COMPLETED or CANCELLED is a no-op that keeps the original
    timestamps. The retry limit is a policy of the orchestrator and is
    not checked here.
    """

    # =========================================================================
    # Creation
    # =========================================================================

    def create(
        self,
        operator_id: uuid.UUID,
        payout_kind: str,
        amount_gross: Decimal,
        fee_amount: Decimal,
        currency: str,
        booking_id: uuid.UUID | None = None,
        payment_method_id: uuid.UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Payout:
        """Create a PENDING payout with amount_net = amount_gross - fee_amount."""
        payout = Payout.objects.create(
            operator_id=operator_id,
            booking_id=booking_id,
            payment_method_id=payment_method_id,
            payout_kind=payout_kind,
            amount_gross=amount_gross,
            fee_amount=fee_amount,
            amount_net=amount_gross - fee_amount,
            currency=currency,
            initiated_at=timezone.now(),
            metadata=metadata or {},
        )

        self.get_logger().info(
            "Payout created",
            extra={
                "payout_id": str(payout.id),
                "operator_id": str(operator_id),
                "booking_id": str(booking_id) if booking_id else None,
                "payout_kind": payout_kind,
                "amount_net": str(payout.amount_net),
            },
        )
        return payout

    # =========================================================================
    # Transitions
    # =========================================================================

    def mark_processing(
        self,
        payout_id: uuid.UUID,
        provider_ids: dict[str, str | None] | None = None,
    ) -> Payout:
        """PENDING/FAILED -> PROCESSING, merging provider references."""

        def apply(payout: Payout) -> list[str]:
            payout.start_processing()
            changed = payout.merge_provider_ids(provider_ids)
            return ["status", "processed_at", *changed]

        return self._transition(payout_id, "processing", apply)

    def mark_completed(
        self,
        payout_id: uuid.UUID,
        provider_ids: dict[str, str | None] | None = None,
    ) -> Payout:
        """
        PROCESSING -> COMPLETED.

        On an already completed payout only the provider references are
        merged; completed_at is kept.
        """

        def apply(payout: Payout) -> list[str]:
            if payout.status != PayoutStatus.COMPLETED:
                payout.complete()
                changed = ["status", "completed_at"]
            else:
                changed = []
            return changed + payout.merge_provider_ids(provider_ids)

        return self._transition(payout_id, "completed", apply)

    def mark_failed(
        self,
        payout_id: uuid.UUID,
        error_code: str,
        error_message: str | None = None,
    ) -> Payout:
        """Any non-terminal status -> FAILED. retry_count is unchanged."""

        def apply(payout: Payout) -> list[str]:
            payout.fail(error_code, error_message)
            return ["status", "failed_at", "error_code", "error_message"]

        payout = self._transition(payout_id, "failed", apply)
        self.get_logger().warning(
            "Payout failed",
            extra={"payout_id": str(payout_id), "error_code": error_code},
        )
        return payout

    def increment_retry(self, payout_id: uuid.UUID) -> Payout:
        """
        Count one retry on a FAILED payout.

        Raises:
            InvalidStateError: Payout is not failed
        """
        with self.atomic():
            payout = self._get_for_update(payout_id)
            if payout.status != PayoutStatus.FAILED:
                raise InvalidStateError(
                    f"Only failed payouts can be retried (status: {payout.status})",
                    details={"payout_id": str(payout_id), "status": payout.status},
                )
            payout.record_retry()
            payout.save(update_fields=["status", "retry_count", "updated_at"])
        return payout

    def cancel(self, payout_id: uuid.UUID, reason: str | None = None) -> Payout:
        """
        PENDING -> CANCELLED. Cancelling a cancelled payout is a no-op.

        A pending payout whose dispatch already started (a timed-out
        attempt, for example) cannot be cancelled: the provider may still
        complete the transfer.

        Raises:
            InvalidTransitionError: Payout is in any other status, or was
                already sent toward a provider
        """

        def apply(payout: Payout) -> list[str]:
            if payout.status == PayoutStatus.CANCELLED:
                return []
            if payout.dispatch_started:
                raise InvalidTransitionError(
                    "Cannot cancel a payout that was already dispatched",
                    details={
                        "payout_id": str(payout_id),
                        "current_state": payout.status,
                        "target_state": PayoutStatus.CANCELLED,
                    },
                )
            payout.cancel(reason)
            return ["status", "cancelled_at", "metadata"]

        payout = self._transition(payout_id, "cancelled", apply)
        self.get_logger().info(
            "Payout cancelled",
            extra={"payout_id": str(payout_id), "reason": reason},
        )
        return payout

    def discard(self, payout_id: uuid.UUID) -> None:
        """
        Delete a PENDING payout that never reached a provider.

        Raises:
            InvalidStateError: Payout is not pending or was already dispatched
        """
        with self.atomic():
            payout = self._get_for_update(payout_id)
            if payout.status != PayoutStatus.PENDING or payout.dispatch_started:
                raise InvalidStateError(
                    "Only undispatched pending payouts can be discarded",
                    details={"payout_id": str(payout_id), "status": payout.status},
                )
            payout.delete()

        self.get_logger().info("Payout discarded", extra={"payout_id": str(payout_id)})

    def record_dispatch_attempt(self, payout_id: uuid.UUID, idempotency_key: str) -> Payout:
        """
        Mark the payout as sent toward a provider, before the call is made.

        From here on the payout can no longer be cancelled or discarded.
        """
        entry = {
            "idempotency_key": idempotency_key,
            "started_at": timezone.now().isoformat(),
        }
        return self.update_metadata(payout_id, {"last_dispatch": entry})

    def record_dispatch_error(self, payout_id: uuid.UUID, error: Exception) -> Payout:
        """
        Remember an ambiguous dispatch error without changing status.

        Used when a provider call timed out and the transfer may or may
        not have happened.
        """
        entry = {
            "error_code": getattr(error, "error_code", type(error).__name__),
            "message": getattr(error, "message", str(error)),
            "recorded_at": timezone.now().isoformat(),
        }
        return self.update_metadata(payout_id, {"last_dispatch_error": entry})

    def update_metadata(self, payout_id: uuid.UUID, values: dict[str, Any]) -> Payout:
        with self.atomic():
            payout = self._get_for_update(payout_id)
            payout.merge_meta(values)
            payout.save(update_fields=["metadata", "updated_at"])
        return payout

    def _transition(
        self,
        payout_id: uuid.UUID,
        target: str,
        apply: Callable[[Payout], list[str]],
    ) -> Payout:
        with self.atomic():
            payout = self._get_for_update(payout_id)
            source = payout.status
            try:
                update_fields = apply(payout)
            except TransitionNotAllowed as e:
                raise InvalidTransitionError(
                    f"Cannot move payout from '{source}' to '{target}'",
                    details={
                        "payout_id": str(payout_id),
                        "current_state": source,
                        "target_state": target,
                    },
                ) from e
            if update_fields:
                payout.save(update_fields=[*dict.fromkeys(update_fields), "updated_at"])

        if source != payout.status:
            self.get_logger().info(
                "Payout transitioned",
                extra={
                    "payout_id": str(payout_id),
                    "from_status": source,
                    "to_status": payout.status,
                },
            )
        return payout

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, payout_id: uuid.UUID) -> Payout:
        """
        Raises:
            PayoutNotFoundError: No such payout
        """
        payout = Payout.objects.filter(id=payout_id).first()
        if payout is None:
            raise PayoutNotFoundError(
                f"Payout {payout_id} not found",
                details={"payout_id": str(payout_id)},
            )
        return payout

    def _get_for_update(self, payout_id: uuid.UUID) -> Payout:
        payout = Payout.objects.select_for_update().filter(id=payout_id).first()
        if payout is None:
            raise PayoutNotFoundError(
                f"Payout {payout_id} not found",
                details={"payout_id": str(payout_id)},
            )
        return payout

    def for_operator(
        self, operator_id: uuid.UUID, limit: int = DEFAULT_QUERY_LIMIT
    ) -> list[Payout]:
        return list(
            Payout.objects.filter(operator_id=operator_id).order_by("-created_at")[:limit]
        )

    def by_status(
        self,
        status: str,
        operator_id: uuid.UUID | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[Payout]:
        queryset = Payout.objects.filter(status=status)
        if operator_id is not None:
            queryset = queryset.filter(operator_id=operator_id)
        return list(queryset.order_by("-created_at")[:limit])

    def for_booking(self, booking_id: uuid.UUID) -> QuerySet[Payout]:
        return Payout.objects.filter(booking_id=booking_id).order_by("-created_at")

    def in_date_range(
        self,
        operator_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> list[Payout]:
        """Payouts created between start and end, inclusive."""
        return list(
            Payout.objects.filter(
                operator_id=operator_id,
                created_at__gte=start,
                created_at__lte=end,
            ).order_by("-created_at")
        )

    def has_outstanding_for_booking(self, booking_id: uuid.UUID) -> bool:
        """Whether a pending, processing or failed payout exists for the booking."""
        return Payout.objects.filter(
            booking_id=booking_id,
            status__in=PayoutStatus.outstanding(),
        ).exists()

    def totals(self, operator_id: uuid.UUID) -> PayoutTotals:
        queryset = Payout.objects.filter(operator_id=operator_id)
        overall = queryset.aggregate(
            count=Count("id"),
            gross=Sum("amount_gross"),
            fees=Sum("fee_amount"),
            net=Sum("amount_net"),
        )
        by_status = {
            row["status"]: {"count": row["count"], "net": row["net"] or Decimal("0")}
            for row in queryset.order_by()
            .values("status")
            .annotate(count=Count("id"), net=Sum("amount_net"))
        }
        return PayoutTotals(
            count=overall["count"] or 0,
            gross=overall["gross"] or Decimal("0"),
            fees=overall["fees"] or Decimal("0"),
            net=overall["net"] or Decimal("0"),
            by_status=by_status,
        )
