"""
Kind-specific payment method details.

A payment method stores its settlement coordinates as one JSON document
whose shape depends on the method kind. This module is the typed view of
that document: one dataclass per PaymentMethodKind, parsed and validated
together.

Types:
    AchDetails: US bank account reached over ACH (via Stripe payouts)
    WalletDetails: Crypto wallet receiving USDC
    WireDetails: Bank account reached by international wire
    PaymentMethodDetails: Union of the three

Usage:
    from payouts.details import parse_details

    details = parse_details("ach", {
        "routing_number": "021000021",
        "account_number": "000123456789",
        "account_type": "checking",
        "bank_name": "Chase",
    })
    details.kind  # "ach"
    details.to_dict()  # JSON-ready payload for PaymentMethod.details
"""

from __future__ import annotations

from dataclasses import MISSING, asdict, dataclass, fields
from typing import Any, ClassVar, Union

from payouts.exceptions import PaymentMethodValidationError
from payouts.state_machines import AchAccountType, PaymentMethodKind
from payouts.validators import (
    validate_account_number,
    validate_iban,
    validate_routing_number,
    validate_swift_code,
    validate_wallet_address,
)


def _invalid(kind: str, field_name: str, message: str) -> PaymentMethodValidationError:
    return PaymentMethodValidationError(
        message,
        details={"method_kind": kind, "field": field_name},
    )


@dataclass(frozen=True)
class AchDetails:
    """
    US bank account for ACH payouts.

    Attributes:
        routing_number: 9-digit ABA routing number (checksum validated)
        account_number: 4-17 digit account number
        account_type: "checking" or "savings"
        bank_name: Display name of the bank
        stripe_account_id: Connected account that owns the external bank
            account; falls back to STRIPE_PAYOUT_ACCOUNT_ID when unset
        stripe_bank_account_id: Stripe external account created for this
            bank account by the first ACH payout
    """

    kind: ClassVar[str] = PaymentMethodKind.ACH

    routing_number: str
    account_number: str
    account_type: str = "checking"
    bank_name: str | None = None
    stripe_account_id: str | None = None
    stripe_bank_account_id: str | None = None

    def validate(self) -> None:
        if not validate_routing_number(self.routing_number):
            raise _invalid(self.kind, "routing_number", "Invalid ACH routing number")
        if not validate_account_number(self.account_number):
            raise _invalid(
                self.kind, "account_number", "Account number must be 4-17 digits"
            )
        if self.account_type not in AchAccountType.values:
            raise _invalid(
                self.kind,
                "account_type",
                f"Account type must be one of: {', '.join(AchAccountType.values)}",
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WalletDetails:
    """
    Crypto wallet receiving USDC.

    Attributes:
        wallet_address: Destination address on the network
        network: Chain name (default "base")
        wallet_id: Provider-side wallet identifier, when known
    """

    kind: ClassVar[str] = PaymentMethodKind.WALLET

    wallet_address: str
    network: str = "base"
    wallet_id: str | None = None

    def validate(self) -> None:
        if not validate_wallet_address(self.wallet_address, self.network):
            raise _invalid(
                self.kind,
                "wallet_address",
                f"Invalid wallet address for network '{self.network}'",
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WireDetails:
    """
    Bank account reached by wire transfer.

    Either an IBAN or a local account number must be present.
    """

    kind: ClassVar[str] = PaymentMethodKind.WIRE

    swift_code: str
    iban: str | None = None
    account_number: str | None = None
    routing_number: str | None = None
    bank_name: str | None = None

    def validate(self) -> None:
        if not validate_swift_code(self.swift_code):
            raise _invalid(self.kind, "swift_code", "Invalid SWIFT/BIC code")
        if not self.iban and not self.account_number:
            raise _invalid(
                self.kind, "iban", "Either iban or account_number is required"
            )
        if self.iban and not validate_iban(self.iban):
            raise _invalid(self.kind, "iban", "Invalid IBAN")
        if self.account_number and not validate_account_number(self.account_number):
            raise _invalid(
                self.kind, "account_number", "Account number must be 4-17 digits"
            )
        if self.routing_number and not validate_routing_number(self.routing_number):
            raise _invalid(self.kind, "routing_number", "Invalid routing number")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


PaymentMethodDetails = Union[AchDetails, WalletDetails, WireDetails]

DETAILS_BY_KIND: dict[str, type] = {
    PaymentMethodKind.ACH: AchDetails,
    PaymentMethodKind.WALLET: WalletDetails,
    PaymentMethodKind.WIRE: WireDetails,
}


def parse_details(
    kind: str,
    payload: dict[str, Any] | None,
    validate: bool = True,
) -> PaymentMethodDetails:
    """
    Build and validate the details variant for a method kind.

    Unknown keys in the payload are ignored. Blank strings count as
    missing. Pass validate=False to load details that were validated
    when they were stored.

    Raises:
        PaymentMethodValidationError: Unknown kind, missing required
            field, or a field that fails its format check
    """
    details_class = DETAILS_BY_KIND.get(kind)
    if details_class is None:
        raise PaymentMethodValidationError(
            f"Unsupported payment method kind: {kind}",
            details={"method_kind": kind},
        )

    payload = payload or {}
    values: dict[str, Any] = {}
    for f in fields(details_class):
        value = payload.get(f.name)
        if value is not None:
            value = str(value).strip() or None
        if value is not None:
            values[f.name] = value

    missing = [
        f.name
        for f in fields(details_class)
        if f.default is MISSING and f.name not in values
    ]
    if missing:
        raise PaymentMethodValidationError(
            f"Missing required fields for {kind}: {', '.join(missing)}",
            details={"method_kind": kind, "missing": missing},
        )

    details = details_class(**values)
    if validate:
        details.validate()
    return details


__all__ = [
    "AchDetails",
    "DETAILS_BY_KIND",
    "PaymentMethodDetails",
    "WalletDetails",
    "WireDetails",
    "parse_details",
]
