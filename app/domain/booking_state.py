"""Booking state machine.

The booking row stores monotonic flags; the named state is derived from
them and every lifecycle event is checked against the transition table
before a handler writes.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from app.core.exceptions import BookingStateError, InvariantViolation


class BookingState(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    AWAITING_ACCEPTANCE = "awaiting_acceptance"
    CONFIRMED = "confirmed"
    CHECKED_IN_PARTIAL = "checked_in_partial"
    CHECKED_IN_BOTH = "checked_in_both"
    NEEDS_REVIEW = "needs_review"
    COMPLETED = "completed"
    SETTLED = "settled"
    CANCELLED = "cancelled"


class BookingEvent(str, Enum):
    PAY = "pay"
    ACCEPT = "accept"
    CANCEL = "cancel"
    EXPIRE = "expire"
    CHECK_IN = "check_in"
    CONFIRM_COMPLETION = "confirm_completion"
    COMPLETE = "complete"
    CLAIM_NO_SHOW = "claim_no_show"
    EXAMINER_REFUSAL = "examiner_refusal"
    AGREE_FORCE_MAJEURE = "agree_force_majeure"
    RESOLVE_REVIEW = "resolve_review"
    SETTLE = "settle"


S = BookingState
E = BookingEvent

# (state, event) -> next state. None means the next state is re-derived
# from the flags the event leaves behind.
BOOKING_TRANSITIONS: dict[tuple[BookingState, BookingEvent], BookingState | None] = {
    (S.PENDING_PAYMENT, E.PAY): S.AWAITING_ACCEPTANCE,
    (S.AWAITING_ACCEPTANCE, E.ACCEPT): S.CONFIRMED,
    (S.AWAITING_ACCEPTANCE, E.CANCEL): S.CANCELLED,
    (S.AWAITING_ACCEPTANCE, E.EXPIRE): S.CANCELLED,
    (S.AWAITING_ACCEPTANCE, E.RESOLVE_REVIEW): None,
    (S.CONFIRMED, E.CANCEL): S.CANCELLED,
    (S.CONFIRMED, E.CHECK_IN): S.CHECKED_IN_PARTIAL,
    (S.CONFIRMED, E.AGREE_FORCE_MAJEURE): S.CONFIRMED,
    (S.CONFIRMED, E.RESOLVE_REVIEW): None,
    (S.CONFIRMED, E.SETTLE): S.SETTLED,
    (S.CHECKED_IN_PARTIAL, E.CANCEL): S.CANCELLED,
    (S.CHECKED_IN_PARTIAL, E.CHECK_IN): S.CHECKED_IN_BOTH,
    (S.CHECKED_IN_PARTIAL, E.CLAIM_NO_SHOW): S.NEEDS_REVIEW,
    (S.CHECKED_IN_PARTIAL, E.RESOLVE_REVIEW): None,
    (S.CHECKED_IN_BOTH, E.CONFIRM_COMPLETION): S.CHECKED_IN_BOTH,
    (S.CHECKED_IN_BOTH, E.COMPLETE): S.COMPLETED,
    (S.CHECKED_IN_BOTH, E.EXAMINER_REFUSAL): S.NEEDS_REVIEW,
    (S.CHECKED_IN_BOTH, E.RESOLVE_REVIEW): None,
    (S.NEEDS_REVIEW, E.RESOLVE_REVIEW): None,
    (S.NEEDS_REVIEW, E.SETTLE): S.SETTLED,
    (S.COMPLETED, E.CONFIRM_COMPLETION): S.COMPLETED,
    (S.COMPLETED, E.RESOLVE_REVIEW): S.COMPLETED,
    (S.COMPLETED, E.SETTLE): S.SETTLED,
}

TERMINAL_STATES = frozenset({S.SETTLED, S.CANCELLED})


def derive_state(booking: Any) -> BookingState:
    """Named state for a booking row (or any object with the same flags)."""
    if booking.cancelled:
        return S.CANCELLED
    if booking.settled:
        return S.SETTLED
    if booking.completed:
        return S.COMPLETED
    if booking.needs_review:
        return S.NEEDS_REVIEW
    if not booking.borrower_paid:
        return S.PENDING_PAYMENT
    if not booking.owner_deposit_paid:
        return S.AWAITING_ACCEPTANCE
    if booking.borrower_checked_in and booking.owner_checked_in:
        return S.CHECKED_IN_BOTH
    if booking.borrower_checked_in or booking.owner_checked_in:
        return S.CHECKED_IN_PARTIAL
    return S.CONFIRMED


def can_apply(booking: Any, event: BookingEvent) -> bool:
    return (derive_state(booking), event) in BOOKING_TRANSITIONS


def assert_booking_transition(booking: Any, event: BookingEvent) -> BookingState:
    """Raise ``BookingStateError`` unless ``event`` is legal from the current state.

    Returns:
        BookingState: the state the booking was in
    """
    state = derive_state(booking)
    if (state, event) not in BOOKING_TRANSITIONS:
        raise BookingStateError(
            f"Cannot {event.value.replace('_', ' ')} a booking that is {state.value.replace('_', ' ')}",
            state=state.value,
            event=event.value,
        )
    return state


def check_invariants(values: Mapping[str, Any]) -> None:
    """Validate the flag combination a write would produce."""
    if values.get("completed") and not (
        values.get("borrower_confirmed_complete") and values.get("owner_confirmed_complete")
    ):
        raise InvariantViolation("completed requires both completion confirmations")
    if values.get("cancelled") and values.get("completed"):
        raise InvariantViolation("a booking cannot be both cancelled and completed")
    if values.get("settled") and not values.get("completed"):
        # No-show and force-majeure settlements close a booking without completion.
        if not (
            values.get("treat_as_owner_no_show")
            or values.get("treat_as_borrower_no_show")
            or values.get("review_reason")
        ):
            raise InvariantViolation("settled requires completion or an admin/force-majeure resolution")
