"""
Payout routing to settlement channel adapters.

The router picks the adapter for a payment method's kind and runs the
transfer under a hard timeout. Provider SDK timeouts are configured too,
but a DNS stall or a slow TLS handshake can outlive them; the router's
bound is the one the orchestrator relies on. It must be longer than every
adapter's own budget so an adapter reports its own error whenever it can.

Usage:
    router = build_default_router()
    result = router.dispatch(method, Decimal("500.00"), "Payout", "payout:<id>:0")
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from payouts.adapters import (
    AchPayoutAdapter,
    WalletPayoutAdapter,
    WireTransferAdapter,
)
from payouts.exceptions import ProviderError, ProviderTimeoutError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from decimal import Decimal

    from payouts.adapters import PayoutProviderAdapter, TransferResult
    from payouts.models import PaymentMethod

logger = logging.getLogger(__name__)


class PayoutRouter:
    """
    Dispatches transfers to the adapter registered for a method kind.

    Args:
        adapters: Mapping of method kind to adapter
        timeout: Seconds to wait for an adapter before giving up; None or
            0 runs the adapter inline without a bound
        max_workers: Threads available for guarded provider calls

    Note:
        A timed-out call keeps running in its worker thread; the router
        only stops waiting for it. The caller must treat the outcome as
        unknown, never as success.
    """

    def __init__(
        self,
        adapters: Mapping[str, PayoutProviderAdapter],
        timeout: float | None = None,
        max_workers: int = 8,
    ) -> None:
        self.adapters = dict(adapters)
        self.timeout = timeout
        self._executor = (
            ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix="payout-provider",
            )
            if timeout
            else None
        )

    def adapter_for(self, method_kind: str) -> PayoutProviderAdapter:
        """
        Raises:
            ProviderError: UNSUPPORTED_METHOD when no adapter is registered
        """
        adapter = self.adapters.get(method_kind)
        if adapter is None:
            raise ProviderError(
                f"No payout provider for method kind '{method_kind}'",
                code="UNSUPPORTED_METHOD",
                retryable=False,
                details={"method_kind": method_kind},
            )
        return adapter

    def dispatch(
        self,
        method: PaymentMethod,
        amount: Decimal,
        description: str,
        idempotency_key: str,
    ) -> TransferResult:
        """
        Send amount to the payment method through its adapter.

        Raises:
            ProviderError: Adapter failure or unsupported method kind
            ProviderTimeoutError: No answer within the timeout
        """
        adapter = self.adapter_for(method.method_kind)
        destination = method.get_details()

        log_context = {
            "method_kind": method.method_kind,
            "payment_method_id": str(method.id),
            "idempotency_key": idempotency_key,
        }
        logger.info("Dispatching payout to provider", extra=log_context)

        if self._executor is None:
            return self._call(adapter, destination, amount, description, idempotency_key)

        future = self._executor.submit(
            self._call, adapter, destination, amount, description, idempotency_key
        )
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            future.cancel()
            logger.error(
                "Payout provider timed out",
                extra={**log_context, "timeout": self.timeout},
            )
            raise ProviderTimeoutError(
                f"Provider did not respond within {self.timeout}s",
                details={"method_kind": method.method_kind, "timeout": self.timeout},
            ) from e

    @staticmethod
    def _call(adapter, destination, amount, description, idempotency_key):
        try:
            return adapter.transfer(destination, amount, description, idempotency_key)
        except ProviderError:
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error from payout provider",
                extra={"adapter": type(adapter).__name__},
            )
            raise ProviderError(
                f"Unexpected provider error: {type(e).__name__}",
                code="PROVIDER_ERROR",
                retryable=False,
            ) from e

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)


def build_default_router() -> PayoutRouter:
    """
    Router wired with the production adapters and configured timeout.

    Raises:
        ImproperlyConfigured: The router timeout does not exceed an
            adapter's own call budget, so the router would give up first
    """
    router = PayoutRouter(
        adapters={
            AchPayoutAdapter.method_kind: AchPayoutAdapter(),
            WalletPayoutAdapter.method_kind: WalletPayoutAdapter(),
            WireTransferAdapter.method_kind: WireTransferAdapter(),
        },
        timeout=settings.PAYOUT_PROVIDER_TIMEOUT_SECONDS,
    )
    if router.timeout:
        for kind, adapter in router.adapters.items():
            budget = adapter.call_budget
            if budget is not None and budget >= router.timeout:
                router.shutdown()
                raise ImproperlyConfigured(
                    f"PAYOUT_PROVIDER_TIMEOUT_SECONDS ({router.timeout}s) must exceed "
                    f"the {kind} adapter's call budget ({budget}s)"
                )
    return router


__all__ = [
    "PayoutRouter",
    "build_default_router",
]
