"""
Pytest fixtures for payout provider adapter tests.

Sections:
    - Destination Fixtures
    - Mock Stripe Fixtures
    - Mock Coinbase Fixtures
"""

import uuid
from types import SimpleNamespace

import pytest
import requests

from payouts.details import AchDetails, WalletDetails, WireDetails


# =============================================================================
# Destination Fixtures
# =============================================================================


@pytest.fixture
def idempotency_key():
    return f"payout:{uuid.uuid4()}:0"


@pytest.fixture
def ach_details():
    return AchDetails(
        routing_number="021000021",
        account_number="000123456789",
        bank_name="Chase",
        stripe_account_id="acct_operator",
    )


@pytest.fixture
def wallet_details():
    return WalletDetails(wallet_address="0x" + "ab" * 20, network="base")


@pytest.fixture
def wire_details():
    return WireDetails(swift_code="DEUTDEFF", iban="DE89370400440532013000")


# =============================================================================
# Mock Stripe Fixtures
# =============================================================================


@pytest.fixture
def mock_stripe(mocker):
    """
    Patch the two Stripe calls an ACH payout makes.

    Returns a namespace with create_external_account and payout_create
    mocks, preconfigured to succeed.
    """
    create_external_account = mocker.patch(
        "payouts.adapters.ach.stripe.Account.create_external_account",
        return_value=SimpleNamespace(id="ba_test123"),
    )
    payout_create = mocker.patch(
        "payouts.adapters.ach.stripe.Payout.create",
        return_value=SimpleNamespace(
            id="po_test123", status="pending", arrival_date=1767225600
        ),
    )
    return SimpleNamespace(
        create_external_account=create_external_account,
        payout_create=payout_create,
    )


# =============================================================================
# Mock Coinbase Fixtures
# =============================================================================


@pytest.fixture
def coinbase_response(mocker):
    """Factory for a requests.Response double with a JSON body."""

    def _create(status_code=201, body=None, invalid_json=False):
        response = mocker.MagicMock(spec=requests.Response)
        response.status_code = status_code
        if invalid_json:
            response.json.side_effect = ValueError("No JSON object could be decoded")
        else:
            response.json.return_value = body if body is not None else {}
        return response

    return _create


@pytest.fixture
def mock_session(mocker):
    return mocker.MagicMock(spec=requests.Session)
