"""
Protocol definitions for the collaborators the payout subsystem consumes.

Bookings and operators are owned by other parts of the platform. The
orchestrator only reads them, through these two narrow interfaces, so it
can be wired to the ORM, to an internal API client, or to an in-memory
fake in tests.

Available Protocols:
    BookingDirectory: Booking lookup
    OperatorDirectory: Operator approval status lookup

Usage:
    class BookingApiClient:
        def get_by_id(self, booking_id):
            data = requests.get(...).json()
            return BookingSnapshot(**data)

    # BookingApiClient is a valid BookingDirectory
    # even without explicit inheritance (duck typing)
    orchestrator = PayoutOrchestrator(bookings=BookingApiClient(), ...)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

# Booking statuses in which the service has been delivered and funds may be released
PAYABLE_BOOKING_STATUSES = frozenset({"checked_in", "completed"})

OPERATOR_APPROVED = "approved"


@dataclass(frozen=True)
class BookingSnapshot:
    """
    Read-only view of a booking at payout time.

    Attributes:
        id: Booking ID
        status: Booking status (e.g. pending, confirmed, checked_in, completed)
        operator_id: Operator who ran the tour
        amount: Amount owed to the operator for this booking
        payout_completed: Whether the booking has already been paid out
        tour_name: Display name, copied into payout metadata
    """

    id: uuid.UUID
    status: str
    operator_id: uuid.UUID
    amount: Decimal
    payout_completed: bool = False
    tour_name: str | None = None


@runtime_checkable
class BookingDirectory(Protocol):
    def get_by_id(self, booking_id: uuid.UUID) -> BookingSnapshot | None:
        """Return the booking, or None if it does not exist."""
        ...


@runtime_checkable
class OperatorDirectory(Protocol):
    def get_status(self, operator_id: uuid.UUID) -> str | None:
        """
        Return the operator's approval status.

        One of approved, pending, suspended, rejected; None when the
        operator is unknown.
        """
        ...


__all__ = [
    "BookingDirectory",
    "BookingSnapshot",
    "OPERATOR_APPROVED",
    "OperatorDirectory",
    "PAYABLE_BOOKING_STATUSES",
]
