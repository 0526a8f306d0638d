"""Booking participant permissions."""

from enum import Enum
from typing import Any
from uuid import UUID

from app.core.exceptions import AuthorizationError


class BookingRole(str, Enum):
    """Parties to a booking."""

    BORROWER = "borrower"
    OWNER = "owner"


def resolve_booking_role(booking: Any, user_id: UUID) -> BookingRole:
    """Which side of the booking the caller is on.

    Raises:
        AuthorizationError: If the caller is neither borrower nor owner
    """
    if booking.borrower_id == user_id:
        return BookingRole.BORROWER
    if booking.owner_id == user_id:
        return BookingRole.OWNER
    raise AuthorizationError("Not a participant in this booking")


def assert_acting_as(booking: Any, role: str, user_id: UUID | None) -> None:
    """Ensure the caller is the party they claim to act as.

    ``user_id`` of None means an internal caller (sweep, task) and is trusted.
    """
    if user_id is None:
        return
    expected = booking.borrower_id if role == BookingRole.BORROWER.value else booking.owner_id
    if expected != user_id:
        raise AuthorizationError(f"Only the booking's {role} can do this")
