"""
Pytest fixtures for payout service tests.

Bookings and operators live outside this app, so tests use in-memory
directories. Provider adapters are replaced with a scripted fake so no
test talks to Stripe or Coinbase.

Sections:
    - Mock Redis Lock
    - In-memory Directories
    - Fake Provider Adapter
    - Service Fixtures
"""

import uuid
from decimal import Decimal

import pytest

from payouts.adapters import TRANSFER_PROCESSING, TransferResult
from payouts.protocols import BookingSnapshot
from payouts.routing import PayoutRouter
from payouts.services import PaymentMethodRegistry, PayoutLedger, PayoutOrchestrator
from payouts.state_machines import PaymentMethodKind
from payouts.tests.factories import PaymentMethodFactory


# =============================================================================
# Mock Redis Lock
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis_lock(mocker):
    """Every PayoutLock acquires and releases without Redis."""
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.register_script.return_value.return_value = 1
    mocker.patch("payouts.locks.get_redis_connection", return_value=mock_client)
    return mock_client


# =============================================================================
# In-memory Directories
# =============================================================================


class InMemoryBookings:
    def __init__(self):
        self.bookings = {}

    def add(self, **kwargs) -> BookingSnapshot:
        kwargs.setdefault("id", uuid.uuid4())
        kwargs.setdefault("status", "completed")
        kwargs.setdefault("amount", Decimal("500.00"))
        kwargs.setdefault("tour_name", "Old Town Walk")
        booking = BookingSnapshot(**kwargs)
        self.bookings[booking.id] = booking
        return booking

    def get_by_id(self, booking_id):
        return self.bookings.get(booking_id)


class InMemoryOperators:
    def __init__(self):
        self.statuses = {}

    def get_status(self, operator_id):
        return self.statuses.get(operator_id)


# =============================================================================
# Fake Provider Adapter
# =============================================================================


class FakeAdapter:
    """
    Adapter double that records calls and replays scripted outcomes.

    Queue outcomes with push(); each is either a TransferResult or an
    exception to raise. With an empty queue every call succeeds with a
    processing result.
    """

    def __init__(self, method_kind, id_field="ach_transaction_id"):
        self.method_kind = method_kind
        self.id_field = id_field
        self.calls = []
        self.outcomes = []

    def push(self, outcome):
        self.outcomes.append(outcome)

    def transfer(self, destination, amount, description, idempotency_key):
        self.calls.append(
            {
                "destination": destination,
                "amount": amount,
                "description": description,
                "idempotency_key": idempotency_key,
            }
        )
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        transaction_id = f"tx_{len(self.calls)}"
        return TransferResult(
            provider_transaction_id=transaction_id,
            status=TRANSFER_PROCESSING,
            provider_ids={self.id_field: transaction_id},
        )


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def bookings():
    return InMemoryBookings()


@pytest.fixture
def operators():
    return InMemoryOperators()


@pytest.fixture
def operator_id(operators):
    """An approved operator."""
    op_id = uuid.uuid4()
    operators.statuses[op_id] = "approved"
    return op_id


@pytest.fixture
def ach_adapter():
    return FakeAdapter(PaymentMethodKind.ACH, id_field="ach_transaction_id")


@pytest.fixture
def wallet_adapter():
    return FakeAdapter(PaymentMethodKind.WALLET, id_field="coinbase_transaction_id")


@pytest.fixture
def router(ach_adapter, wallet_adapter):
    return PayoutRouter(
        adapters={
            PaymentMethodKind.ACH: ach_adapter,
            PaymentMethodKind.WALLET: wallet_adapter,
        }
    )


@pytest.fixture
def registry():
    return PaymentMethodRegistry()


@pytest.fixture
def ledger():
    return PayoutLedger()


@pytest.fixture
def orchestrator(bookings, operators, registry, ledger, router):
    return PayoutOrchestrator(
        bookings=bookings,
        operators=operators,
        registry=registry,
        ledger=ledger,
        router=router,
        max_workers=1,
    )


@pytest.fixture
def primary_ach(db, operator_id):
    """The approved operator's active primary ACH method."""
    return PaymentMethodFactory(operator_id=operator_id, is_primary=True)


@pytest.fixture
def payable_booking(bookings, operator_id):
    """A completed $500 booking run by the approved operator."""
    return bookings.add(operator_id=operator_id)
