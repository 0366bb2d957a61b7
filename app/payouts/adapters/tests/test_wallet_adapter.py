"""
Tests for the Coinbase-backed wallet payout adapter.

The HTTP session is a mock; responses are built with coinbase_response.
"""

from decimal import Decimal

import pytest
import requests

from payouts.adapters import (
    TRANSFER_COMPLETED,
    TRANSFER_PROCESSING,
    WalletPayoutAdapter,
)
from payouts.adapters.wallet import from_smallest_units, to_smallest_units
from payouts.exceptions import ProviderError, ProviderTimeoutError


def make_adapter(session, **kwargs):
    kwargs.setdefault("api_url", "https://api.coinbase.test/v2/")
    kwargs.setdefault("api_key", "cb-key")
    kwargs.setdefault("escrow_wallet_id", "escrow-1")
    return WalletPayoutAdapter(session=session, **kwargs)


def transaction_body(status="completed", tx_hash="0xhash", transaction_id="cb_tx_1"):
    return {
        "data": {
            "id": transaction_id,
            "status": status,
            "network": {"status": "confirmed", "hash": tx_hash},
        }
    }


class TestUnitConversion:
    def test_rounds_down_to_six_decimals(self):
        assert to_smallest_units(Decimal("98.9000009")) == 98900000

    def test_formats_smallest_units(self):
        assert from_smallest_units(98900000) == "98.900000"
        assert from_smallest_units(1) == "0.000001"


class TestTransfer:
    def test_completed_send(
        self, mock_session, coinbase_response, wallet_details, idempotency_key
    ):
        mock_session.post.return_value = coinbase_response(body=transaction_body())

        result = make_adapter(mock_session).transfer(
            wallet_details, Decimal("98.9"), "Payout for booking 1", idempotency_key
        )

        assert result.status == TRANSFER_COMPLETED
        assert result.is_completed is True
        assert result.provider_transaction_id == "cb_tx_1"
        assert result.provider_ids == {
            "coinbase_transaction_id": "cb_tx_1",
            "blockchain_tx_hash": "0xhash",
        }

        call = mock_session.post.call_args
        assert call.args[0] == "https://api.coinbase.test/v2/accounts/escrow-1/transactions"
        assert call.kwargs["json"] == {
            "type": "send",
            "to": wallet_details.wallet_address,
            "amount": "98.900000",
            "currency": "USDC",
            "network": "base",
            "description": "Payout for booking 1",
            "idem": idempotency_key,
        }
        assert call.kwargs["headers"]["Authorization"] == "Bearer cb-key"
        assert call.kwargs["timeout"] == 15.0

    @pytest.mark.parametrize("status", ["pending", "waiting_for_clearing", "unknown"])
    def test_unsettled_statuses_are_processing(
        self, mock_session, coinbase_response, wallet_details, idempotency_key, status
    ):
        mock_session.post.return_value = coinbase_response(
            body=transaction_body(status=status, tx_hash=None)
        )

        result = make_adapter(mock_session).transfer(
            wallet_details, Decimal("5"), "x", idempotency_key
        )

        assert result.status == TRANSFER_PROCESSING
        assert result.provider_ids["blockchain_tx_hash"] is None

    @pytest.mark.parametrize("status", ["failed", "canceled", "expired"])
    def test_failed_transaction(
        self, mock_session, coinbase_response, wallet_details, idempotency_key, status
    ):
        mock_session.post.return_value = coinbase_response(
            body=transaction_body(status=status)
        )

        with pytest.raises(ProviderError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_TRANSFER_FAILED"
        assert exc_info.value.retryable is False
        assert exc_info.value.details["coinbase_transaction_id"] == "cb_tx_1"

    def test_escrow_not_configured(self, mock_session, wallet_details, idempotency_key):
        adapter = make_adapter(mock_session, escrow_wallet_id="")

        with pytest.raises(ProviderError) as exc_info:
            adapter.transfer(wallet_details, Decimal("5"), "x", idempotency_key)

        assert exc_info.value.code == "WALLET_NOT_CONFIGURED"
        mock_session.post.assert_not_called()

    def test_amount_below_smallest_unit(self, mock_session, wallet_details, idempotency_key):
        with pytest.raises(ProviderError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("0.0000001"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_AMOUNT_TOO_SMALL"
        mock_session.post.assert_not_called()

    def test_timeout_defaults_to_setting(self, settings, mock_session):
        settings.COINBASE_API_TIMEOUT_SECONDS = 9.0

        adapter = make_adapter(mock_session)

        assert adapter.timeout == 9.0
        assert adapter.call_budget == 9.0


class TestErrorMapping:
    def test_connect_timeout_is_retryable(self, mock_session, wallet_details, idempotency_key):
        mock_session.post.side_effect = requests.ConnectTimeout("no route")

        with pytest.raises(ProviderError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert not isinstance(exc_info.value, ProviderTimeoutError)
        assert exc_info.value.code == "WALLET_PROVIDER_UNAVAILABLE"
        assert exc_info.value.retryable is True

    @pytest.mark.parametrize(
        "error",
        [
            requests.ReadTimeout("slow"),
            requests.Timeout("slow"),
            requests.ConnectionError("reset by peer"),
        ],
    )
    def test_unconfirmed_send_raises_timeout(
        self, mock_session, wallet_details, idempotency_key, error
    ):
        mock_session.post.side_effect = error

        with pytest.raises(ProviderTimeoutError) as exc_info:
            make_adapter(mock_session, timeout=7.5).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_PROVIDER_TIMEOUT"
        assert exc_info.value.details["timeout"] == 7.5

    @pytest.mark.parametrize("status_code", [429, 503])
    def test_throttling_and_unavailable_are_retryable(
        self, mock_session, coinbase_response, wallet_details, idempotency_key, status_code
    ):
        mock_session.post.return_value = coinbase_response(status_code=status_code)

        with pytest.raises(ProviderError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_PROVIDER_UNAVAILABLE"
        assert exc_info.value.retryable is True
        assert exc_info.value.details["status_code"] == status_code

    @pytest.mark.parametrize("status_code", [500, 502, 504])
    def test_server_errors_leave_outcome_unknown(
        self, mock_session, coinbase_response, wallet_details, idempotency_key, status_code
    ):
        mock_session.post.return_value = coinbase_response(status_code=status_code)

        with pytest.raises(ProviderTimeoutError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_PROVIDER_TIMEOUT"
        assert exc_info.value.details["status_code"] == status_code

    def test_client_error_uses_provider_message(
        self, mock_session, coinbase_response, wallet_details, idempotency_key
    ):
        mock_session.post.return_value = coinbase_response(
            status_code=400,
            body={"errors": [{"id": "validation_error", "message": "Insufficient funds"}]},
        )

        with pytest.raises(ProviderError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_TRANSFER_REJECTED"
        assert exc_info.value.message == "Insufficient funds"
        assert exc_info.value.retryable is False

    def test_client_error_without_json(
        self, mock_session, coinbase_response, wallet_details, idempotency_key
    ):
        mock_session.post.return_value = coinbase_response(
            status_code=401, invalid_json=True
        )

        with pytest.raises(ProviderError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_TRANSFER_REJECTED"
        assert "401" in exc_info.value.message

    def test_unreadable_success_body(
        self, mock_session, coinbase_response, wallet_details, idempotency_key
    ):
        mock_session.post.return_value = coinbase_response(invalid_json=True)

        with pytest.raises(ProviderError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_INVALID_RESPONSE"

    def test_missing_transaction_id(
        self, mock_session, coinbase_response, wallet_details, idempotency_key
    ):
        mock_session.post.return_value = coinbase_response(body={"data": {}})

        with pytest.raises(ProviderError) as exc_info:
            make_adapter(mock_session).transfer(
                wallet_details, Decimal("5"), "x", idempotency_key
            )

        assert exc_info.value.code == "WALLET_INVALID_RESPONSE"
