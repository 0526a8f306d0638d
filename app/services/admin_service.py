"""Administrative resolution of reviewed bookings and payout bookkeeping.

Every decision is audit-logged with the administrator's identity. When a
decision requests settlement, the settlement response is returned as-is
and a settlement failure does not undo the decision.
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BookingStateError, NotFoundError, ValidationError
from app.domain.booking_state import BookingEvent, assert_booking_transition
from app.models.booking import Booking
from app.models.payment import Payment, PaymentType
from app.repositories.booking_repository import booking_repository
from app.services.audit_service import audit_service
from app.services.settlement_service import settlement_service

logger = logging.getLogger(__name__)


class ReviewDecision(str, Enum):
    REJECT_CLEAR_FLAGS = "reject_clear_flags"
    APPROVE_SETTLE = "approve_settle"
    OWNER_FAULT = "owner_fault"
    BORROWER_FAULT = "borrower_fault"


class NoShowDecision(str, Enum):
    APPROVE_OWNER_NO_SHOW = "approve_owner_no_show"
    APPROVE_BORROWER_NO_SHOW = "approve_borrower_no_show"
    REJECT_CLAIM = "reject_claim"


PAYOUT_TYPES = (PaymentType.OWNER_PAYOUT.value, PaymentType.BORROWER_COMPENSATION.value)

_CLEARED_REVIEW_FLAGS: dict[str, Any] = {
    "needs_review": False,
    "review_reason": None,
    "treat_as_owner_no_show": False,
    "treat_as_borrower_no_show": False,
    "no_show_claimed_by": None,
    "no_show_claimed_at": None,
    "bike_invalid": False,
    "bike_invalid_reason": None,
    "bike_invalid_at": None,
}

_REVIEW_PATCHES: dict[ReviewDecision, dict[str, Any]] = {
    ReviewDecision.REJECT_CLEAR_FLAGS: _CLEARED_REVIEW_FLAGS,
    ReviewDecision.APPROVE_SETTLE: {"needs_review": False, "review_reason": "admin_approved_settle"},
    ReviewDecision.OWNER_FAULT: {
        "needs_review": False,
        "review_reason": "admin_owner_fault",
        "treat_as_owner_no_show": True,
        "treat_as_borrower_no_show": False,
    },
    ReviewDecision.BORROWER_FAULT: {
        "needs_review": False,
        "review_reason": "admin_borrower_fault",
        "treat_as_borrower_no_show": True,
        "treat_as_owner_no_show": False,
    },
}

_NO_SHOW_PATCHES: dict[NoShowDecision, dict[str, Any]] = {
    NoShowDecision.APPROVE_OWNER_NO_SHOW: {
        "needs_review": False,
        "treat_as_owner_no_show": True,
        "treat_as_borrower_no_show": False,
        "review_reason": "admin_approved_owner_no_show",
    },
    NoShowDecision.APPROVE_BORROWER_NO_SHOW: {
        "needs_review": False,
        "treat_as_borrower_no_show": True,
        "treat_as_owner_no_show": False,
        "review_reason": "admin_approved_borrower_no_show",
    },
    NoShowDecision.REJECT_CLAIM: {
        "needs_review": False,
        "treat_as_owner_no_show": False,
        "treat_as_borrower_no_show": False,
        "no_show_claimed_by": None,
        "no_show_claimed_at": None,
        "review_reason": "admin_rejected_no_show_claim",
    },
}


def _require_open(booking: Booking) -> None:
    if booking.cancelled:
        raise BookingStateError("Booking is cancelled")
    if booking.settled:
        raise BookingStateError("Booking already settled")


class AdminService:
    """Decisions reserved for the platform administrator."""

    async def resolve_review(
        self,
        db: AsyncSession,
        booking_id: UUID,
        decision: str,
        admin_user_id: UUID,
        note: str | None = None,
    ) -> dict[str, Any]:
        """Resolve a reviewed booking and, unless rejecting, request settlement."""
        try:
            decision = ReviewDecision(decision)
        except ValueError:
            raise ValidationError(f"decision must be one of: {', '.join(d.value for d in ReviewDecision)}")

        booking = await booking_repository.get_or_404(db, booking_id)
        _require_open(booking)
        assert_booking_transition(booking, BookingEvent.RESOLVE_REVIEW)

        booking = await booking_repository.update(
            db, booking, dict(_REVIEW_PATCHES[decision]), expect={"cancelled": False, "settled": False}
        )
        if booking is None:
            booking = await booking_repository.get_or_404(db, booking_id)
            _require_open(booking)
            raise BookingStateError("Booking changed while resolving; retry")

        await audit_service.log_booking_action(
            db,
            booking_id=booking_id,
            actor_role="admin",
            actor_user_id=admin_user_id,
            action=f"admin_{decision.value}",
            note=note,
            details={"decision": decision.value},
        )
        logger.info(f"Admin {admin_user_id} resolved booking {booking_id}: {decision.value}")

        settlement: dict[str, Any] | None = None
        if decision != ReviewDecision.REJECT_CLEAR_FLAGS:
            settlement = await settlement_service.trigger(
                db,
                booking_id,
                reason=decision.value,
                actor_role="admin",
                actor_user_id=admin_user_id,
            )
            booking = await booking_repository.get_or_404(db, booking_id)

        return {
            "ok": True,
            "booking_id": booking.id,
            "decision": decision.value,
            "needs_review": booking.needs_review,
            "review_reason": booking.review_reason,
            "treat_as_owner_no_show": booking.treat_as_owner_no_show,
            "treat_as_borrower_no_show": booking.treat_as_borrower_no_show,
            "settled": booking.settled,
            "settlement": settlement,
        }

    async def resolve_no_show(
        self,
        db: AsyncSession,
        booking_id: UUID,
        decision: str,
        admin_user_id: UUID,
        note: str | None = None,
    ) -> dict[str, Any]:
        """Set or clear no-show fault flags without settling.

        Approvals need the booking to be under review; rejecting a claim
        also works outside formal review.
        """
        try:
            decision = NoShowDecision(decision)
        except ValueError:
            raise ValidationError(f"decision must be one of: {', '.join(d.value for d in NoShowDecision)}")

        booking = await booking_repository.get_or_404(db, booking_id)
        _require_open(booking)
        if not booking.needs_review and decision != NoShowDecision.REJECT_CLAIM:
            raise BookingStateError("Booking is not under review", needs_review=False)

        booking = await booking_repository.update(
            db, booking, dict(_NO_SHOW_PATCHES[decision]), expect={"cancelled": False, "settled": False}
        )
        if booking is None:
            booking = await booking_repository.get_or_404(db, booking_id)
            _require_open(booking)
            raise BookingStateError("Booking changed while resolving; retry")

        await audit_service.log_booking_action(
            db,
            booking_id=booking_id,
            actor_role="admin",
            actor_user_id=admin_user_id,
            action=f"admin_{decision.value}",
            note=note,
            details={"decision": decision.value},
        )
        logger.info(f"Admin {admin_user_id} no-show decision on booking {booking_id}: {decision.value}")

        return {
            "ok": True,
            "booking_id": booking.id,
            "decision": decision.value,
            "needs_review": booking.needs_review,
            "review_reason": booking.review_reason,
            "treat_as_owner_no_show": booking.treat_as_owner_no_show,
            "treat_as_borrower_no_show": booking.treat_as_borrower_no_show,
            "settled": booking.settled,
            "settlement": None,
        }

    async def mark_payout_paid(
        self,
        db: AsyncSession,
        booking_id: UUID,
        payout_type: str,
        admin_user_id: UUID,
        payout_method: str | None = None,
        payout_reference: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Record that a payout due from settlement was sent.

        Idempotent: a payout already marked paid is returned unchanged.
        """
        if payout_type not in PAYOUT_TYPES:
            raise ValidationError(f"payout_type must be one of: {', '.join(PAYOUT_TYPES)}")
        now = now or datetime.now(UTC)
        booking = await booking_repository.get_or_404(db, booking_id)

        result = await db.execute(
            select(Payment)
            .where(Payment.booking_id == booking_id, Payment.payment_type == payout_type)
            .order_by(Payment.created_at.desc())
        )
        payouts = list(result.scalars().all())
        already_paid = next((p for p in payouts if p.status == "paid"), None)
        if already_paid:
            return self._payout_response(booking, already_paid, already_paid=True)

        due = next((p for p in payouts if p.status == "payout_due"), None)
        if due is None:
            raise NotFoundError("Payout", f"{payout_type} for booking {booking_id}")

        await booking_repository.save_payment(
            db,
            due,
            {
                "status": "paid",
                "payout_paid_at": now,
                "payout_method": payout_method,
                "payout_reference": payout_reference,
            },
        )
        if payout_type == PaymentType.OWNER_PAYOUT.value and not booking.owner_payout_done:
            booking = await booking_repository.update(
                db, booking, {"owner_payout_done": True, "owner_payout_at": now}
            )

        await audit_service.log_booking_action(
            db,
            booking_id=booking_id,
            actor_role="admin",
            actor_user_id=admin_user_id,
            action="payout_marked_paid",
            note=f"{payout_type} paid via {payout_method or 'unspecified'}",
            details={
                "payment_id": str(due.id),
                "payout_type": payout_type,
                "amount_cents": due.amount,
                "payout_reference": payout_reference,
            },
        )
        logger.info(f"Payout {due.id} ({payout_type}) marked paid for booking {booking_id}")
        return self._payout_response(booking, due, already_paid=False)

    def _payout_response(self, booking: Booking, payment: Payment, already_paid: bool) -> dict[str, Any]:
        return {
            "ok": True,
            "booking_id": booking.id,
            "payment_id": payment.id,
            "payout_type": payment.payment_type,
            "amount_cents": payment.amount,
            "status": payment.status,
            "already_paid": already_paid,
            "payout_paid_at": payment.payout_paid_at,
            "payout_method": payment.payout_method,
            "payout_reference": payment.payout_reference,
            "owner_payout_done": booking.owner_payout_done,
        }


# Singleton instance
admin_service = AdminService()
