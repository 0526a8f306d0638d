"""Check-in, completion, deposit choice and force-majeure transitions."""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import BookingStateError, ConflictError, ValidationError
from app.core.permissions import BookingRole, assert_acting_as
from app.domain.booking_state import BookingEvent, assert_booking_transition
from app.domain.time_windows import (
    MIN_COMPLETE_MINUTES,
    InvalidTimestamp,
    as_utc,
    check_in_window,
    completion_allowed_at,
    force_majeure_window,
)
from app.models.booking import Booking
from app.repositories.booking_repository import booking_repository
from app.services.audit_service import audit_service
from app.services.settlement_service import settlement_service

logger = logging.getLogger(__name__)

DEPOSIT_CHOICES = ("refund", "keep")


def _parse_actor(actor: str) -> str:
    try:
        return BookingRole(actor).value
    except ValueError:
        raise ValidationError("actor must be 'borrower' or 'owner'")


def _require_both_paid(booking: Booking) -> None:
    if not (booking.borrower_paid and booking.owner_deposit_paid):
        raise BookingStateError(
            "Both parties must be paid",
            borrower_paid=booking.borrower_paid,
            owner_deposit_paid=booking.owner_deposit_paid,
        )


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


class LifecycleService:
    """Participant-driven transitions between acceptance and settlement."""

    # ==================== CHECK-IN ====================

    async def check_in(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor: str,
        actor_user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Mark one party as physically present.

        A party that already checked in gets a success response with no change.
        """
        actor = _parse_actor(actor)
        now = as_utc(now or datetime.now(UTC))
        booking = await booking_repository.get_or_404(db, booking_id)
        assert_acting_as(booking, actor, actor_user_id)

        if booking.cancelled:
            raise BookingStateError("Booking is cancelled")
        if booking.completed:
            raise BookingStateError("Booking already completed")
        _require_both_paid(booking)

        flag = f"{actor}_checked_in"
        if getattr(booking, flag):
            logger.info(f"{actor} already checked in for booking {booking_id}")
            return self._check_in_response(booking, actor, already_checked_in=True)

        try:
            window = check_in_window(booking.scheduled_start_at, booking.duration_minutes)
        except InvalidTimestamp:
            raise BookingStateError("Booking start time missing or invalid")

        if now < window.opens_at:
            raise BookingStateError(
                "Check-in not open yet",
                opens_at=window.opens_at.isoformat(),
                booking_start=window.booking_start.isoformat(),
            )
        if now > window.closes_at:
            raise BookingStateError(
                "Check-in window closed",
                closes_at=window.closes_at.isoformat(),
                booking_start=window.booking_start.isoformat(),
                booking_end=window.booking_end.isoformat(),
            )

        assert_booking_transition(booking, BookingEvent.CHECK_IN)
        updated = await booking_repository.update(
            db,
            booking,
            {flag: True, f"{flag}_at": now},
            expect={flag: False, "cancelled": False},
        )
        if updated is None:
            booking = await booking_repository.get_or_404(db, booking_id)
            if booking.cancelled:
                raise BookingStateError("Booking is cancelled")
            return self._check_in_response(booking, actor, already_checked_in=True)

        await audit_service.log_booking_action(
            db,
            booking_id=booking_id,
            actor_role=actor,
            actor_user_id=updated.party_id(actor),
            action="check_in",
            note=f"{actor} checked in",
        )
        logger.info(f"{actor} checked in for booking {booking_id}")
        return self._check_in_response(updated, actor, already_checked_in=False)

    def _check_in_response(self, booking: Booking, actor: str, already_checked_in: bool) -> dict[str, Any]:
        return {
            "ok": True,
            "booking_id": booking.id,
            "actor": actor,
            "already_checked_in": already_checked_in,
            "borrower_checked_in": booking.borrower_checked_in,
            "borrower_checked_in_at": _iso(booking.borrower_checked_in_at),
            "owner_checked_in": booking.owner_checked_in,
            "owner_checked_in_at": _iso(booking.owner_checked_in_at),
        }

    # ==================== COMPLETION ====================

    async def complete(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor: str,
        owner_deposit_choice: str | None = None,
        actor_user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Record a party's completion confirmation.

        Once both parties have confirmed, the booking is completed (at most
        once) and settlement is requested. A settlement failure is reported
        in ``auto_settle`` and does not undo completion.
        """
        actor = _parse_actor(actor)
        if owner_deposit_choice is not None:
            if owner_deposit_choice not in DEPOSIT_CHOICES:
                raise ValidationError("owner_deposit_choice must be 'refund' or 'keep'")
            if actor != BookingRole.OWNER.value:
                raise ValidationError("Only the owner can set owner_deposit_choice")
        now = as_utc(now or datetime.now(UTC))

        booking = await booking_repository.get_or_404(db, booking_id)
        assert_acting_as(booking, actor, actor_user_id)

        if booking.cancelled:
            raise BookingStateError("Booking is cancelled")

        if not booking.completed:
            if booking.needs_review:
                raise BookingStateError("Booking is under review", review_reason=booking.review_reason)
            if not (booking.borrower_checked_in and booking.owner_checked_in):
                missing = [
                    role
                    for role in ("borrower", "owner")
                    if not getattr(booking, f"{role}_checked_in")
                ]
                raise BookingStateError(
                    "Both parties must check in before confirming completion",
                    missing_check_in=missing,
                    borrower_checked_in=booking.borrower_checked_in,
                    owner_checked_in=booking.owner_checked_in,
                )
            try:
                allowed_at = completion_allowed_at(booking.scheduled_start_at)
            except InvalidTimestamp:
                raise BookingStateError("Booking start time missing or invalid")
            if now < allowed_at:
                raise BookingStateError(
                    "Too early to confirm completion",
                    allowed_at=allowed_at.isoformat(),
                    min_complete_minutes=MIN_COMPLETE_MINUTES,
                )
            assert_booking_transition(booking, BookingEvent.CONFIRM_COMPLETION)

        flag = f"{actor}_confirmed_complete"
        patch: dict[str, Any] = {}
        if not getattr(booking, flag) and not booking.completed:
            patch[flag] = True
            patch[f"{flag}_at"] = now
        if owner_deposit_choice and not booking.settled and booking.owner_deposit_choice != owner_deposit_choice:
            patch["owner_deposit_choice"] = owner_deposit_choice

        newly_confirmed = flag in patch
        if patch:
            booking = await booking_repository.update(db, booking, patch)
            if newly_confirmed:
                await audit_service.log_booking_action(
                    db,
                    booking_id=booking_id,
                    actor_role=actor,
                    actor_user_id=booking.party_id(actor),
                    action="completion_confirmed",
                    note=f"{actor} confirmed completion"
                    + (f"; deposit_choice={owner_deposit_choice}" if owner_deposit_choice else ""),
                )

        if (
            booking.borrower_confirmed_complete
            and booking.owner_confirmed_complete
            and not booking.completed
        ):
            assert_booking_transition(booking, BookingEvent.COMPLETE)
            completed = await booking_repository.update(
                db,
                booking,
                {
                    "completed": True,
                    "completed_at": now,
                    "status": "completed",
                    "owner_payout_amount_cents": settings.owner_payout_placeholder_cents,
                    "owner_payout_done": False,
                },
                expect={"completed": False, "cancelled": False},
            )
            if completed is not None:
                booking = completed
                await audit_service.log_booking_action(
                    db,
                    booking_id=booking_id,
                    actor_role="system",
                    action="booking_completed",
                    note="Both parties confirmed completion",
                )
                logger.info(f"Booking {booking_id} completed")
            else:
                booking = await booking_repository.get_or_404(db, booking_id)

        auto_settle: dict[str, Any] | None = None
        if booking.completed and not booking.settled:
            auto_settle = await settlement_service.trigger(
                db, booking_id, reason="completion", actor_role=actor, actor_user_id=booking.party_id(actor)
            )
            booking = await booking_repository.get_or_404(db, booking_id)
        elif booking.settled:
            auto_settle = {"attempted": False, "ok": True, "reason": "already_settled"}

        if booking.completed and booking.settled:
            message = "Booking completed and settled."
        elif booking.completed:
            message = "Booking completed; settlement pending."
        else:
            message = "Confirmation recorded; waiting for the other party."

        return {
            "ok": True,
            "booking_id": booking.id,
            "actor": actor,
            "actor_confirmed": getattr(booking, flag) or booking.completed,
            "borrower_confirmed_complete": booking.borrower_confirmed_complete,
            "owner_confirmed_complete": booking.owner_confirmed_complete,
            "completed": booking.completed,
            "settled": booking.settled,
            "settled_at": _iso(booking.settled_at),
            "settlement_outcome": booking.settlement_outcome,
            "owner_deposit_choice": booking.owner_deposit_choice,
            "auto_settle": auto_settle,
            "message": message,
        }

    # ==================== OWNER DEPOSIT CHOICE ====================

    async def set_owner_deposit_choice(
        self,
        db: AsyncSession,
        booking_id: UUID,
        choice: str,
        actor_user_id: UUID | None = None,
    ) -> dict[str, Any]:
        """Owner decides whether their deposit is refunded or kept on the platform."""
        if choice not in DEPOSIT_CHOICES:
            raise ValidationError("owner_deposit_choice must be 'refund' or 'keep'")

        booking = await booking_repository.get_or_404(db, booking_id)
        assert_acting_as(booking, BookingRole.OWNER.value, actor_user_id)
        if booking.cancelled:
            raise BookingStateError("Booking is cancelled")
        if booking.settled:
            raise ConflictError("Booking already settled; deposit choice is locked")

        if booking.owner_deposit_choice != choice:
            booking = await booking_repository.update(
                db, booking, {"owner_deposit_choice": choice}, expect={"settled": False}
            )
            if booking is None:
                raise ConflictError("Booking already settled; deposit choice is locked")
            await audit_service.log_booking_action(
                db,
                booking_id=booking_id,
                actor_role="owner",
                actor_user_id=booking.owner_id,
                action="owner_deposit_choice",
                note=f"choice={choice}",
            )

        return {"ok": True, "booking_id": booking.id, "owner_deposit_choice": booking.owner_deposit_choice}

    # ==================== FORCE MAJEURE ====================

    async def agree_force_majeure(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor: str,
        actor_user_id: UUID | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Record one party's agreement that the rental cannot happen.

        When both parties have agreed, settlement is requested with
        ``review_reason = "force_majeure"``.
        """
        actor = _parse_actor(actor)
        now = as_utc(now or datetime.now(UTC))
        booking = await booking_repository.get_or_404(db, booking_id)
        assert_acting_as(booking, actor, actor_user_id)

        if booking.cancelled or booking.completed or booking.settled:
            raise BookingStateError("Booking is no longer active")
        _require_both_paid(booking)
        if booking.borrower_checked_in or booking.owner_checked_in:
            raise BookingStateError("Force majeure is not available after check-in")

        try:
            opens_at, closes_at = force_majeure_window(booking.scheduled_start_at)
        except InvalidTimestamp:
            raise BookingStateError("Booking start time missing or invalid")
        if now < opens_at:
            raise BookingStateError(
                "Force majeure can only be agreed within 24 hours of the start",
                opens_at=opens_at.isoformat(),
            )
        if now > closes_at:
            raise BookingStateError("Booking has already started", booking_start=closes_at.isoformat())
        assert_booking_transition(booking, BookingEvent.AGREE_FORCE_MAJEURE)

        column = f"force_majeure_{actor}_agreed_at"
        if getattr(booking, column) is None:
            booking = await booking_repository.update(db, booking, {column: now})
            await audit_service.log_booking_action(
                db,
                booking_id=booking_id,
                actor_role=actor,
                actor_user_id=booking.party_id(actor),
                action="force_majeure_agreed",
                note=f"{actor} agreed to force majeure",
            )

        both_agreed = bool(
            booking.force_majeure_borrower_agreed_at and booking.force_majeure_owner_agreed_at
        )
        settlement: dict[str, Any] | None = None
        if both_agreed:
            if booking.review_reason != "force_majeure":
                booking = await booking_repository.update(db, booking, {"review_reason": "force_majeure"})
            settlement = await settlement_service.trigger(
                db, booking_id, reason="force_majeure", actor_role=actor, actor_user_id=booking.party_id(actor)
            )
            booking = await booking_repository.get_or_404(db, booking_id)

        return {
            "ok": True,
            "booking_id": booking.id,
            "borrower_agreed_at": _iso(booking.force_majeure_borrower_agreed_at),
            "owner_agreed_at": _iso(booking.force_majeure_owner_agreed_at),
            "both_agreed": both_agreed,
            "settled": booking.settled,
            "settlement": settlement,
        }


# Singleton instance
lifecycle_service = LifecycleService()
