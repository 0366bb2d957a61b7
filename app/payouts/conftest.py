"""
Pytest fixtures shared by every payout test package.

Fixtures provide payment methods and payouts in each lifecycle state.
Payouts are built by the factory with their status set at construction,
since the protected FSM field cannot be changed afterwards.

Usage:
    def test_complete(processing_payout):
        processing_payout.complete()
        processing_payout.save()
        assert processing_payout.status == PayoutStatus.COMPLETED
"""

import pytest

from payouts.state_machines import PayoutStatus
from payouts.tests.factories import PaymentMethodFactory, PayoutFactory


# =============================================================================
# Payment Method Fixtures
# =============================================================================


@pytest.fixture
def ach_method(db):
    """Active, verified ACH method."""
    return PaymentMethodFactory()


@pytest.fixture
def wallet_method(db):
    """Active, verified wallet method."""
    return PaymentMethodFactory(wallet=True)


# =============================================================================
# Payout State Fixtures
# =============================================================================


@pytest.fixture
def pending_payout(db):
    return PayoutFactory()


@pytest.fixture
def processing_payout(db):
    return PayoutFactory(status=PayoutStatus.PROCESSING)


@pytest.fixture
def completed_payout(db):
    return PayoutFactory(status=PayoutStatus.COMPLETED)


@pytest.fixture
def failed_payout(db):
    return PayoutFactory(
        status=PayoutStatus.FAILED,
        error_code="ACH_PROVIDER_UNAVAILABLE",
        error_message="Could not reach Stripe",
    )


@pytest.fixture
def cancelled_payout(db):
    return PayoutFactory(status=PayoutStatus.CANCELLED)
