"""
Tests for PayoutRouter.
"""

import threading
from decimal import Decimal

import pytest
from django.core.exceptions import ImproperlyConfigured

from payouts.adapters import AchPayoutAdapter, TransferResult, WalletPayoutAdapter
from payouts.adapters.wire import WireTransferAdapter
from payouts.details import AchDetails
from payouts.exceptions import ProviderError, ProviderTimeoutError
from payouts.routing import PayoutRouter, build_default_router


class RecordingAdapter:
    method_kind = "ach"

    def __init__(self, result=None, error=None, wait_for=None):
        self.result = result or TransferResult(provider_transaction_id="tx_1")
        self.error = error
        self.wait_for = wait_for
        self.calls = []

    def transfer(self, destination, amount, description, idempotency_key):
        self.calls.append((destination, amount, description, idempotency_key))
        if self.wait_for is not None:
            self.wait_for.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.mark.django_db
class TestDispatch:
    def test_dispatches_to_adapter_for_kind(self, ach_method):
        adapter = RecordingAdapter()
        router = PayoutRouter({"ach": adapter})

        result = router.dispatch(ach_method, Decimal("500.00"), "Payout", "key-1")

        assert result.provider_transaction_id == "tx_1"
        destination, amount, description, key = adapter.calls[0]
        assert isinstance(destination, AchDetails)
        assert destination.account_number == "000123456789"
        assert (amount, description, key) == (Decimal("500.00"), "Payout", "key-1")

    def test_unsupported_kind(self, wallet_method):
        router = PayoutRouter({"ach": RecordingAdapter()})

        with pytest.raises(ProviderError) as exc_info:
            router.dispatch(wallet_method, Decimal("1"), "x", "key")

        assert exc_info.value.code == "UNSUPPORTED_METHOD"
        assert exc_info.value.retryable is False

    def test_provider_error_passes_through(self, ach_method):
        error = ProviderError("declined", code="ACH_DECLINED")
        router = PayoutRouter({"ach": RecordingAdapter(error=error)})

        with pytest.raises(ProviderError) as exc_info:
            router.dispatch(ach_method, Decimal("1"), "x", "key")

        assert exc_info.value is error

    def test_unexpected_error_is_wrapped(self, ach_method):
        router = PayoutRouter({"ach": RecordingAdapter(error=ZeroDivisionError())})

        with pytest.raises(ProviderError) as exc_info:
            router.dispatch(ach_method, Decimal("1"), "x", "key")

        assert exc_info.value.code == "PROVIDER_ERROR"
        assert exc_info.value.retryable is False
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)

    def test_guarded_call_returns_result(self, ach_method):
        router = PayoutRouter({"ach": RecordingAdapter()}, timeout=2)
        try:
            result = router.dispatch(ach_method, Decimal("1"), "x", "key")
        finally:
            router.shutdown()

        assert result.provider_transaction_id == "tx_1"

    def test_guarded_call_times_out(self, ach_method):
        release = threading.Event()
        adapter = RecordingAdapter(wait_for=release)
        router = PayoutRouter({"ach": adapter}, timeout=0.05)

        try:
            with pytest.raises(ProviderTimeoutError) as exc_info:
                router.dispatch(ach_method, Decimal("1"), "x", "key")
        finally:
            release.set()
            router.shutdown()

        assert exc_info.value.code == "PROVIDER_TIMEOUT"
        assert exc_info.value.retryable is True
        assert exc_info.value.details["timeout"] == 0.05


class TestBuildDefaultRouter:
    def test_wires_every_channel(self, settings):
        settings.PAYOUT_PROVIDER_TIMEOUT_SECONDS = 45.0

        router = build_default_router()
        try:
            assert isinstance(router.adapter_for("ach"), AchPayoutAdapter)
            assert isinstance(router.adapter_for("wallet"), WalletPayoutAdapter)
            assert isinstance(router.adapter_for("wire"), WireTransferAdapter)
            assert router.timeout == 45.0
        finally:
            router.shutdown()

    def test_default_timeouts_agree(self):
        router = build_default_router()
        try:
            for adapter in router.adapters.values():
                budget = adapter.call_budget
                assert budget is None or budget < router.timeout
        finally:
            router.shutdown()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"PAYOUT_PROVIDER_TIMEOUT_SECONDS": 12.5},
            {"COINBASE_API_TIMEOUT_SECONDS": 30.0},
            {"STRIPE_API_TIMEOUT_SECONDS": 15},
        ],
    )
    def test_router_timeout_must_exceed_adapter_budgets(self, settings, overrides):
        settings.PAYOUT_PROVIDER_TIMEOUT_SECONDS = 30.0
        settings.COINBASE_API_TIMEOUT_SECONDS = 15.0
        settings.STRIPE_API_TIMEOUT_SECONDS = 10
        for name, value in overrides.items():
            setattr(settings, name, value)

        with pytest.raises(ImproperlyConfigured, match="call budget"):
            build_default_router()
