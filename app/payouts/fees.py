"""
Payout fee calculation.

Fees depend only on the settlement channel and the gross amount:

    ach:    no fee
    wallet: gross × PAYOUT_WALLET_FEE_RATE + PAYOUT_WALLET_NETWORK_FEE
    wire:   PAYOUT_WIRE_FLAT_FEE

Rates come from Django settings so they can be tuned per environment.

Usage:
    from payouts import fees

    fees.estimate_fee("wallet", Decimal("100.00"))  # Decimal("1.100000")

    quote = fees.quote("ach", Decimal("500"))
    quote.net  # Decimal("500.00")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

from payouts.state_machines import PaymentMethodKind

logger = logging.getLogger(__name__)

FIAT_QUANTUM = Decimal("0.01")
USDC_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class FeeQuote:
    """
    Fee breakdown for one payout.

    Attributes:
        gross: Amount owed, quantized to the channel's precision
        fee: Channel fee
        net: gross - fee, the amount actually transferred
        fee_known: False when the channel had no fee schedule and zero was assumed
    """

    gross: Decimal
    fee: Decimal
    net: Decimal
    fee_known: bool = True


def quantum_for(method_kind: str) -> Decimal:
    """Wallet payouts settle in USDC (6 decimals); bank rails in USD cents."""
    if method_kind == PaymentMethodKind.WALLET:
        return USDC_QUANTUM
    return FIAT_QUANTUM


def currency_for(method_kind: str) -> str:
    if method_kind == PaymentMethodKind.WALLET:
        return "usdc"
    return "usd"


def _quantize(amount: Decimal, method_kind: str) -> Decimal:
    return amount.quantize(quantum_for(method_kind), rounding=ROUND_HALF_UP)


def _fee_for(method_kind: str, amount: Decimal) -> Decimal | None:
    if method_kind == PaymentMethodKind.ACH:
        return Decimal("0")
    if method_kind == PaymentMethodKind.WALLET:
        return (
            amount * Decimal(settings.PAYOUT_WALLET_FEE_RATE)
            + Decimal(settings.PAYOUT_WALLET_NETWORK_FEE)
        )
    if method_kind == PaymentMethodKind.WIRE:
        return Decimal(settings.PAYOUT_WIRE_FLAT_FEE)
    return None


def estimate_fee(method_kind: str, amount: Decimal) -> Decimal:
    """
    Fee for sending amount over the given channel.

    Unknown channels cost zero and log a warning instead of raising.
    """
    amount = Decimal(amount)
    fee = _fee_for(method_kind, amount)
    if fee is None:
        logger.warning(
            "Fee unknown for payout method kind, assuming zero",
            extra={"method_kind": method_kind},
        )
        return Decimal("0")
    return _quantize(fee, method_kind)


def quote(method_kind: str, amount: Decimal) -> FeeQuote:
    """
    Full fee breakdown for a payout.

    The net amount may be zero or negative for tiny payouts; callers
    decide whether that is payable.
    """
    gross = _quantize(Decimal(amount), method_kind)
    fee = _fee_for(method_kind, gross)
    fee_known = fee is not None
    if not fee_known:
        logger.warning(
            "Fee unknown for payout method kind, assuming zero",
            extra={"method_kind": method_kind},
        )
        fee = Decimal("0")

    fee = _quantize(fee, method_kind)
    return FeeQuote(gross=gross, fee=fee, net=gross - fee, fee_known=fee_known)


__all__ = [
    "FeeQuote",
    "currency_for",
    "estimate_fee",
    "quantum_for",
    "quote",
]
