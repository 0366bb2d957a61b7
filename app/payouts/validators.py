"""
Format validators for operator payment method details.

Each validator is a pure function returning a bool so it can be used both
by the registry (which raises PaymentMethodValidationError) and by callers
that only want to pre-check user input.

Usage:
    from payouts.validators import validate_routing_number

    validate_routing_number("021000021")  # True
    validate_routing_number("021000022")  # False
"""

from __future__ import annotations

import re

# Networks whose addresses are 20-byte hex strings
EVM_NETWORKS = frozenset(
    {"base", "ethereum", "polygon", "arbitrum", "optimism", "avalanche"}
)

_ACCOUNT_NUMBER_RE = re.compile(r"^\d{4,17}$")
_SWIFT_RE = re.compile(r"^[A-Z]{4}[A-Z]{2}[A-Z0-9]{2}([A-Z0-9]{3})?$")
_IBAN_RE = re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]{11,30}$")
_EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def validate_routing_number(value: str | None) -> bool:
    """
    Validate a US ABA routing number.

    Nine digits whose weighted sum
    3·(d1+d4+d7) + 7·(d2+d5+d8) + 1·(d3+d6+d9) is a multiple of 10.
    """
    if not value or len(value) != 9 or not value.isdigit():
        return False

    d = [int(c) for c in value]
    checksum = (
        3 * (d[0] + d[3] + d[6])
        + 7 * (d[1] + d[4] + d[7])
        + (d[2] + d[5] + d[8])
    )
    return checksum % 10 == 0


def validate_account_number(value: str | None) -> bool:
    """Bank account numbers are 4 to 17 digits."""
    return bool(value) and bool(_ACCOUNT_NUMBER_RE.match(value))


def validate_swift_code(value: str | None) -> bool:
    """SWIFT/BIC: 4 bank letters, 2 country letters, 2 location chars, optional branch."""
    return bool(value) and bool(_SWIFT_RE.match(value.upper()))


def validate_iban(value: str | None) -> bool:
    """
    Validate an IBAN with the ISO 13616 mod-97 check.

    Spaces are ignored. The first four characters are moved to the end,
    letters become 10..35 and the resulting number must leave remainder 1.
    """
    if not value:
        return False

    iban = value.replace(" ", "").upper()
    if not _IBAN_RE.match(iban):
        return False

    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(digits) % 97 == 1


def validate_wallet_address(value: str | None, network: str = "base") -> bool:
    """
    Validate a wallet address for the given network.

    EVM networks require 0x followed by 40 hex characters. Other networks
    only require a non-blank address.
    """
    if not value or not value.strip():
        return False
    if network.lower() in EVM_NETWORKS:
        return bool(_EVM_ADDRESS_RE.match(value))
    return True


__all__ = [
    "EVM_NETWORKS",
    "validate_account_number",
    "validate_iban",
    "validate_routing_number",
    "validate_swift_code",
    "validate_wallet_address",
]
