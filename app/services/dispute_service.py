"""Dispute entry points: no-show claims and examiner refusals.

Both move a booking into review without moving money; an administrator
decides the outcome (see ``admin_service``).
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BookingStateError, ValidationError
from app.core.permissions import resolve_booking_role
from app.domain.booking_state import BookingEvent, assert_booking_transition
from app.domain.time_windows import (
    InvalidTimestamp,
    as_utc,
    examiner_refusal_window,
    no_show_claim_allowed_at,
)
from app.models.booking import Booking
from app.repositories.booking_repository import booking_repository
from app.services.audit_service import audit_service

logger = logging.getLogger(__name__)

NO_SHOW_REVIEW_REASON = "no_show_claim"
EXAMINER_REVIEW_REASON = "examiner_refusal"


class ExaminerRefusalReason(str, Enum):
    """Why the road-test examiner refused to proceed."""

    MOTORCYCLE_ISSUE = "motorcycle_issue"
    NOT_READY = "not_ready"
    REGISTRY_RESCHEDULE = "registry_reschedule"
    WEATHER_CONDITIONS = "weather_conditions"
    OTHER = "other"


REFUSAL_LABELS: dict[ExaminerRefusalReason, str] = {
    ExaminerRefusalReason.MOTORCYCLE_ISSUE: "Motorcycle issue",
    ExaminerRefusalReason.NOT_READY: "Borrower not ready",
    ExaminerRefusalReason.REGISTRY_RESCHEDULE: "Registry rescheduled",
    ExaminerRefusalReason.WEATHER_CONDITIONS: "Weather conditions",
    ExaminerRefusalReason.OTHER: "Other",
}


def _require_active_both_paid(booking: Booking) -> None:
    if booking.cancelled:
        raise BookingStateError("Booking is cancelled")
    if booking.settled:
        raise BookingStateError("Booking already settled")
    if booking.completed:
        raise BookingStateError("Booking already completed")
    if not (booking.borrower_paid and booking.owner_deposit_paid):
        raise BookingStateError(
            "Booking is not confirmed",
            borrower_paid=booking.borrower_paid,
            owner_deposit_paid=booking.owner_deposit_paid,
        )


class DisputeService:
    """Participant-raised disputes that freeze a booking pending admin review."""

    async def claim_no_show(
        self,
        db: AsyncSession,
        booking_id: UUID,
        user_id: UUID,
        note: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Claim that the other party did not turn up.

        Allowed from 30 minutes after the start, when the claimant has
        checked in and the other party has not.
        """
        now = as_utc(now or datetime.now(UTC))
        booking = await booking_repository.get_or_404(db, booking_id)
        role = resolve_booking_role(booking, user_id).value
        other = "owner" if role == "borrower" else "borrower"

        _require_active_both_paid(booking)

        if booking.needs_review:
            if booking.review_reason == NO_SHOW_REVIEW_REASON and booking.no_show_claimed_by == role:
                logger.info(f"No-show claim by {role} already recorded for booking {booking_id}")
                return self._response(booking, already_claimed=True)
            raise BookingStateError("Booking is already under review", review_reason=booking.review_reason)

        try:
            allowed_at = no_show_claim_allowed_at(booking.scheduled_start_at)
        except InvalidTimestamp:
            raise BookingStateError("Booking start time missing or invalid")
        if now < allowed_at:
            raise BookingStateError("No-show claim not available yet", allowed_at=allowed_at.isoformat())
        if not getattr(booking, f"{role}_checked_in"):
            raise BookingStateError("You must check in before claiming a no-show")
        if getattr(booking, f"{other}_checked_in"):
            raise BookingStateError(f"The {other} has checked in")

        assert_booking_transition(booking, BookingEvent.CLAIM_NO_SHOW)
        updated = await booking_repository.update(
            db,
            booking,
            {
                "needs_review": True,
                "review_reason": NO_SHOW_REVIEW_REASON,
                "no_show_claimed_by": role,
                "no_show_claimed_at": now,
            },
            expect={"needs_review": False, "cancelled": False},
        )
        if updated is None:
            booking = await booking_repository.get_or_404(db, booking_id)
            if booking.no_show_claimed_by == role and booking.needs_review:
                return self._response(booking, already_claimed=True)
            raise BookingStateError("Booking is already under review", review_reason=booking.review_reason)

        await audit_service.log_booking_action(
            db,
            booking_id=booking_id,
            actor_role=role,
            actor_user_id=user_id,
            action="no_show_claimed",
            note=note or f"{role} claims {other} did not show",
            details={"claimed_by": role, "claimed_at_fault": other},
        )
        logger.info(f"No-show claim by {role} on booking {booking_id}")
        return self._response(updated, already_claimed=False)

    async def examiner_refusal(
        self,
        db: AsyncSession,
        booking_id: UUID,
        user_id: UUID,
        reason_code: str,
        note: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Report that the examiner refused the road test.

        Allowed only after both parties checked in, between the start and
        10 minutes after it. A motorcycle issue also marks the bike invalid.
        """
        try:
            reason = ExaminerRefusalReason(reason_code)
        except ValueError:
            raise ValidationError(
                f"reason_code must be one of: {', '.join(r.value for r in ExaminerRefusalReason)}"
            )
        now = as_utc(now or datetime.now(UTC))
        booking = await booking_repository.get_or_404(db, booking_id)
        role = resolve_booking_role(booking, user_id).value

        _require_active_both_paid(booking)

        if booking.needs_review:
            if booking.review_reason == EXAMINER_REVIEW_REASON:
                logger.info(f"Examiner refusal already recorded for booking {booking_id}")
                return self._response(booking, already_claimed=True)
            raise BookingStateError("Booking is already under review", review_reason=booking.review_reason)

        if not (booking.borrower_checked_in and booking.owner_checked_in):
            raise BookingStateError(
                "Both parties must be checked in",
                borrower_checked_in=booking.borrower_checked_in,
                owner_checked_in=booking.owner_checked_in,
            )

        try:
            opens_at, closes_at = examiner_refusal_window(booking.scheduled_start_at)
        except InvalidTimestamp:
            raise BookingStateError("Booking start time missing or invalid")
        if now < opens_at:
            raise BookingStateError(
                "Too early: the road test has not started",
                allowed_from=opens_at.isoformat(),
            )
        if now > closes_at:
            raise BookingStateError(
                "Too late: refusals must be reported within 10 minutes of the start",
                closes_at=closes_at.isoformat(),
            )

        label = REFUSAL_LABELS[reason]
        tag = f"Examiner refused road test: {label} (submitted by {role})"
        if note:
            tag = f"{tag}. Note: {note.strip()}"

        values: dict[str, Any] = {
            "needs_review": True,
            "review_reason": EXAMINER_REVIEW_REASON,
            "needs_rebooking": True,
            "tag_reason": tag,
        }
        if reason == ExaminerRefusalReason.MOTORCYCLE_ISSUE:
            values.update(
                {
                    "bike_invalid": True,
                    "bike_invalid_reason": note.strip() if note else label,
                    "bike_invalid_at": now,
                }
            )

        assert_booking_transition(booking, BookingEvent.EXAMINER_REFUSAL)
        updated = await booking_repository.update(
            db, booking, values, expect={"needs_review": False, "cancelled": False}
        )
        if updated is None:
            booking = await booking_repository.get_or_404(db, booking_id)
            if booking.review_reason == EXAMINER_REVIEW_REASON:
                return self._response(booking, already_claimed=True)
            raise BookingStateError("Booking is already under review", review_reason=booking.review_reason)

        await audit_service.log_booking_action(
            db,
            booking_id=booking_id,
            actor_role=role,
            actor_user_id=user_id,
            action="examiner_refusal",
            note=tag,
            details={"reason_code": reason.value},
        )
        logger.info(f"Examiner refusal ({reason.value}) recorded by {role} for booking {booking_id}")
        return self._response(updated, already_claimed=False)

    def _response(self, booking: Booking, already_claimed: bool) -> dict[str, Any]:
        return {
            "ok": True,
            "booking_id": booking.id,
            "already_recorded": already_claimed,
            "needs_review": booking.needs_review,
            "review_reason": booking.review_reason,
            "needs_rebooking": booking.needs_rebooking,
            "no_show_claimed_by": booking.no_show_claimed_by,
            "tag_reason": booking.tag_reason,
            "bike_invalid": booking.bike_invalid,
        }


# Singleton instance
dispute_service = DisputeService()
