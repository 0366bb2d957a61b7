"""
Tests for PayoutLedger.

The status field is protected, so payouts are re-fetched with
Payout.objects.get() instead of refresh_from_db().
"""

import uuid
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from freezegun import freeze_time

from payouts.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    PayoutNotFoundError,
    ProviderTimeoutError,
)
from payouts.models import Payout
from payouts.state_machines import PayoutStatus
from payouts.tests.factories import PayoutFactory


def get_fresh_payout(payout_id):
    return Payout.objects.get(id=payout_id)


# =============================================================================
# Create
# =============================================================================


class TestCreate:
    def test_net_is_gross_minus_fee(self, db, ledger):
        payout = ledger.create(
            operator_id=uuid.uuid4(),
            booking_id=uuid.uuid4(),
            payout_kind="wallet",
            amount_gross=Decimal("100.000000"),
            fee_amount=Decimal("1.100000"),
            currency="usdc",
        )

        payout = get_fresh_payout(payout.id)
        assert payout.status == PayoutStatus.PENDING
        assert payout.amount_net == Decimal("98.900000")
        assert payout.amount_net == payout.amount_gross - payout.fee_amount
        assert payout.retry_count == 0

    def test_stores_metadata(self, db, ledger):
        payout = ledger.create(
            operator_id=uuid.uuid4(),
            payout_kind="ach",
            amount_gross=Decimal("10.00"),
            fee_amount=Decimal("0.00"),
            currency="usd",
            metadata={"tour_name": "Harbour Cruise"},
        )

        assert get_fresh_payout(payout.id).get_meta("tour_name") == "Harbour Cruise"


# =============================================================================
# Transitions
# =============================================================================


class TestTransitions:
    def test_mark_processing_merges_provider_ids(self, ledger, pending_payout):
        ledger.mark_processing(pending_payout.id, {"ach_transaction_id": "po_123"})

        payout = get_fresh_payout(pending_payout.id)
        assert payout.status == PayoutStatus.PROCESSING
        assert payout.ach_transaction_id == "po_123"
        assert payout.processed_at is not None

    def test_pending_cannot_complete(self, ledger, pending_payout):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ledger.mark_completed(pending_payout.id)

        assert exc_info.value.details["current_state"] == PayoutStatus.PENDING
        assert exc_info.value.details["target_state"] == "completed"
        assert get_fresh_payout(pending_payout.id).status == PayoutStatus.PENDING

    def test_mark_completed_is_idempotent(self, ledger, processing_payout):
        with freeze_time("2026-04-01 10:00:00"):
            ledger.mark_completed(processing_payout.id)
        with freeze_time("2026-04-02 10:00:00"):
            ledger.mark_completed(
                processing_payout.id, {"external_reference": "settle-9"}
            )

        payout = get_fresh_payout(processing_payout.id)
        assert payout.status == PayoutStatus.COMPLETED
        assert payout.completed_at == datetime(2026, 4, 1, 10, tzinfo=dt_timezone.utc)
        assert payout.external_reference == "settle-9"

    def test_mark_failed(self, ledger, processing_payout):
        ledger.mark_failed(processing_payout.id, "ACH_DECLINED", "Account closed")

        payout = get_fresh_payout(processing_payout.id)
        assert payout.status == PayoutStatus.FAILED
        assert payout.error_code == "ACH_DECLINED"
        assert payout.retry_count == 0

    def test_completed_cannot_fail(self, ledger, completed_payout):
        with pytest.raises(InvalidTransitionError):
            ledger.mark_failed(completed_payout.id, "LATE")

    def test_increment_retry(self, ledger, failed_payout):
        payout = ledger.increment_retry(failed_payout.id)

        assert payout.retry_count == 1
        assert get_fresh_payout(failed_payout.id).retry_count == 1

    def test_increment_retry_requires_failed(self, ledger, pending_payout):
        with pytest.raises(InvalidStateError):
            ledger.increment_retry(pending_payout.id)

    def test_cancel(self, ledger, pending_payout):
        ledger.cancel(pending_payout.id, "Booking refunded")

        payout = get_fresh_payout(pending_payout.id)
        assert payout.status == PayoutStatus.CANCELLED
        assert payout.get_meta("cancel_reason") == "Booking refunded"

    def test_cancel_twice_is_noop(self, ledger, cancelled_payout):
        payout = ledger.cancel(cancelled_payout.id)

        assert payout.status == PayoutStatus.CANCELLED
        assert payout.cancelled_at is None

    def test_cannot_cancel_processing(self, ledger, processing_payout):
        with pytest.raises(InvalidTransitionError):
            ledger.cancel(processing_payout.id)

    @pytest.mark.parametrize(
        "metadata",
        [
            {"last_dispatch": {"idempotency_key": "payout:x:0"}},
            {"last_dispatch_error": {"error_code": "PROVIDER_TIMEOUT"}},
        ],
    )
    def test_cannot_cancel_dispatched_pending(self, db, ledger, metadata):
        payout = PayoutFactory(metadata=metadata)

        with pytest.raises(InvalidTransitionError) as exc_info:
            ledger.cancel(payout.id, "Too late")

        assert exc_info.value.details["current_state"] == PayoutStatus.PENDING
        assert get_fresh_payout(payout.id).status == PayoutStatus.PENDING

    def test_missing_payout(self, db, ledger):
        with pytest.raises(PayoutNotFoundError):
            ledger.mark_processing(uuid.uuid4())

    def test_amounts_never_change(self, ledger, pending_payout):
        ledger.mark_processing(pending_payout.id)
        ledger.mark_failed(pending_payout.id, "X")

        payout = get_fresh_payout(pending_payout.id)
        assert payout.amount_gross == pending_payout.amount_gross
        assert payout.amount_net == pending_payout.amount_net


# =============================================================================
# Discard & Metadata
# =============================================================================


class TestDiscardAndMetadata:
    def test_discard_pending(self, ledger, pending_payout):
        ledger.discard(pending_payout.id)

        assert not Payout.objects.filter(id=pending_payout.id).exists()

    def test_discard_refuses_dispatched(self, db, ledger):
        payout = PayoutFactory(ach_transaction_id="po_1")

        with pytest.raises(InvalidStateError):
            ledger.discard(payout.id)

    def test_discard_refuses_non_pending(self, ledger, failed_payout):
        with pytest.raises(InvalidStateError):
            ledger.discard(failed_payout.id)

    def test_discard_refuses_attempted(self, ledger, pending_payout):
        ledger.record_dispatch_attempt(pending_payout.id, f"payout:{pending_payout.id}:0")

        with pytest.raises(InvalidStateError):
            ledger.discard(pending_payout.id)

    @freeze_time("2026-05-05 08:00:00")
    def test_record_dispatch_attempt(self, ledger, pending_payout):
        ledger.record_dispatch_attempt(pending_payout.id, "payout:abc:0")

        payout = get_fresh_payout(pending_payout.id)
        assert payout.status == PayoutStatus.PENDING
        assert payout.dispatch_started is True
        assert payout.get_meta("last_dispatch") == {
            "idempotency_key": "payout:abc:0",
            "started_at": "2026-05-05T08:00:00+00:00",
        }

    @freeze_time("2026-05-05 08:00:00")
    def test_record_dispatch_error_keeps_status(self, ledger, pending_payout):
        ledger.record_dispatch_error(
            pending_payout.id, ProviderTimeoutError("No answer within 30s")
        )

        payout = get_fresh_payout(pending_payout.id)
        assert payout.status == PayoutStatus.PENDING
        assert payout.get_meta("last_dispatch_error") == {
            "error_code": "PROVIDER_TIMEOUT",
            "message": "No answer within 30s",
            "recorded_at": "2026-05-05T08:00:00+00:00",
        }

    def test_update_metadata_merges(self, db, ledger):
        payout = PayoutFactory(metadata={"tour_name": "Walk"})

        ledger.update_metadata(payout.id, {"note": "manual"})

        assert get_fresh_payout(payout.id).metadata == {"tour_name": "Walk", "note": "manual"}


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    def test_for_operator_newest_first_with_limit(self, db, ledger):
        operator_id = uuid.uuid4()
        with freeze_time("2026-01-01"):
            PayoutFactory(operator_id=operator_id)
        with freeze_time("2026-01-02"):
            middle = PayoutFactory(operator_id=operator_id)
        with freeze_time("2026-01-03"):
            newest = PayoutFactory(operator_id=operator_id)
        PayoutFactory()

        assert ledger.for_operator(operator_id, limit=2) == [newest, middle]

    def test_by_status(self, db, ledger):
        operator_id = uuid.uuid4()
        failed = PayoutFactory(operator_id=operator_id, status=PayoutStatus.FAILED)
        PayoutFactory(operator_id=operator_id)
        PayoutFactory(status=PayoutStatus.FAILED)

        assert ledger.by_status(PayoutStatus.FAILED, operator_id=operator_id) == [failed]
        assert len(ledger.by_status(PayoutStatus.FAILED)) == 2

    def test_in_date_range_is_inclusive(self, db, ledger):
        operator_id = uuid.uuid4()
        with freeze_time("2026-03-01 00:00:00"):
            start = PayoutFactory(operator_id=operator_id)
        with freeze_time("2026-03-15 00:00:00"):
            PayoutFactory(operator_id=operator_id)
        with freeze_time("2026-04-01 00:00:00"):
            PayoutFactory(operator_id=operator_id)

        found = ledger.in_date_range(
            operator_id,
            datetime(2026, 3, 1, tzinfo=dt_timezone.utc),
            datetime(2026, 3, 31, tzinfo=dt_timezone.utc),
        )

        assert len(found) == 2
        assert found[-1] == start

    def test_has_outstanding_for_booking(self, db, ledger):
        booking_id = uuid.uuid4()
        PayoutFactory(booking_id=booking_id, status=PayoutStatus.CANCELLED)
        assert ledger.has_outstanding_for_booking(booking_id) is False

        PayoutFactory(booking_id=booking_id, status=PayoutStatus.FAILED)
        assert ledger.has_outstanding_for_booking(booking_id) is True

    def test_totals(self, db, ledger):
        operator_id = uuid.uuid4()
        PayoutFactory(
            operator_id=operator_id,
            amount_gross=Decimal("100.00"),
            fee_amount=Decimal("25.00"),
            status=PayoutStatus.COMPLETED,
        )
        PayoutFactory(operator_id=operator_id, amount_gross=Decimal("50.00"))

        totals = ledger.totals(operator_id)

        assert totals.count == 2
        assert totals.gross == Decimal("150.00")
        assert totals.fees == Decimal("25.00")
        assert totals.net == Decimal("125.00")
        assert totals.by_status[PayoutStatus.COMPLETED]["count"] == 1
        assert totals.by_status[PayoutStatus.PENDING]["net"] == Decimal("50.00")

    def test_totals_empty(self, db, ledger):
        totals = ledger.totals(uuid.uuid4())

        assert totals.to_dict() == {
            "count": 0,
            "gross": Decimal("0"),
            "fees": Decimal("0"),
            "net": Decimal("0"),
            "by_status": {},
        }
