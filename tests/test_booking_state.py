"""Tests for the booking state machine."""

from types import SimpleNamespace

import pytest

from app.core.exceptions import BookingStateError, InvariantViolation
from app.domain.booking_state import (
    BookingEvent,
    BookingState,
    assert_booking_transition,
    can_apply,
    check_invariants,
    derive_state,
)


def _flags(**overrides) -> SimpleNamespace:
    values = {
        "cancelled": False,
        "settled": False,
        "completed": False,
        "needs_review": False,
        "borrower_paid": True,
        "owner_deposit_paid": True,
        "borrower_checked_in": False,
        "owner_checked_in": False,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestDeriveState:
    @pytest.mark.parametrize(
        "flags,expected",
        [
            ({"borrower_paid": False, "owner_deposit_paid": False}, BookingState.PENDING_PAYMENT),
            ({"owner_deposit_paid": False}, BookingState.AWAITING_ACCEPTANCE),
            ({}, BookingState.CONFIRMED),
            ({"owner_checked_in": True}, BookingState.CHECKED_IN_PARTIAL),
            ({"owner_checked_in": True, "borrower_checked_in": True}, BookingState.CHECKED_IN_BOTH),
            ({"needs_review": True}, BookingState.NEEDS_REVIEW),
            ({"completed": True}, BookingState.COMPLETED),
            ({"completed": True, "settled": True}, BookingState.SETTLED),
            ({"cancelled": True, "needs_review": True}, BookingState.CANCELLED),
        ],
    )
    def test_state_from_flags(self, flags, expected):
        """Test each flag combination maps to one named state."""
        assert derive_state(_flags(**flags)) == expected


class TestTransitions:
    def test_cancel_allowed_before_both_check_in(self):
        """Test cancellation is legal until both parties have checked in."""
        assert can_apply(_flags(owner_deposit_paid=False), BookingEvent.CANCEL)
        assert can_apply(_flags(), BookingEvent.CANCEL)
        assert can_apply(_flags(borrower_checked_in=True), BookingEvent.CANCEL)
        assert not can_apply(_flags(borrower_checked_in=True, owner_checked_in=True), BookingEvent.CANCEL)

    def test_expire_only_while_awaiting_acceptance(self):
        """Test system expiry needs a paid borrower and an unpaid owner."""
        assert can_apply(_flags(owner_deposit_paid=False), BookingEvent.EXPIRE)
        assert not can_apply(_flags(), BookingEvent.EXPIRE)

    def test_terminal_states_reject_everything(self):
        """Test settled and cancelled bookings accept no further events."""
        for booking in (_flags(cancelled=True), _flags(completed=True, settled=True)):
            for event in BookingEvent:
                assert not can_apply(booking, event)

    def test_rejection_carries_state_and_event(self):
        """Test an illegal transition raises with the state and event in the detail."""
        with pytest.raises(BookingStateError) as exc_info:
            assert_booking_transition(_flags(cancelled=True), BookingEvent.CHECK_IN)

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["state"] == "cancelled"
        assert exc_info.value.detail["event"] == "check_in"

    def test_returns_current_state(self):
        """Test a legal transition returns the state it was checked from."""
        assert assert_booking_transition(_flags(), BookingEvent.CHECK_IN) == BookingState.CONFIRMED


class TestInvariants:
    def test_completed_requires_both_confirmations(self):
        """Test completion without both confirmations is refused."""
        with pytest.raises(InvariantViolation):
            check_invariants({"completed": True, "borrower_confirmed_complete": True})

    def test_cancelled_and_completed_are_exclusive(self):
        """Test a booking can never be both cancelled and completed."""
        with pytest.raises(InvariantViolation):
            check_invariants(
                {
                    "cancelled": True,
                    "completed": True,
                    "borrower_confirmed_complete": True,
                    "owner_confirmed_complete": True,
                }
            )

    def test_settled_without_completion_needs_resolution(self):
        """Test settlement without completion requires an admin or force-majeure reason."""
        with pytest.raises(InvariantViolation):
            check_invariants({"settled": True})
        check_invariants({"settled": True, "treat_as_owner_no_show": True})
        check_invariants({"settled": True, "review_reason": "force_majeure"})

    def test_valid_combination_passes(self):
        """Test a normal completed booking passes."""
        check_invariants(
            {
                "completed": True,
                "borrower_confirmed_complete": True,
                "owner_confirmed_complete": True,
                "settled": True,
            }
        )
