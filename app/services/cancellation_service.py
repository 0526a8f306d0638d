"""Cancellation transition.

The booking row is claimed first (``cancelled`` flipped from False in one
guarded update) and the money effects run afterwards. Each effect is
idempotent, and the ``booking_cancelled`` audit entry is written last as
the completion marker. A retry after a crash re-drives whatever is missing.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import BookingStateError, ValidationError
from app.core.idempotency import cancel_refund_key
from app.core.permissions import assert_acting_as
from app.domain.booking_state import BookingEvent, assert_booking_transition
from app.domain.cancellation_policy import (
    POST_ACCEPTANCE_SCENARIOS,
    SCENARIO_STATUS,
    CancellationScenario,
    CancellationTerms,
    CancelledBy,
    get_policy_description,
    post_acceptance_terms,
    pre_acceptance_terms,
)
from app.domain.time_windows import InvalidTimestamp, acceptance_deadline, as_utc, days_until
from app.models.booking import Booking
from app.models.payment import Payment, PaymentType
from app.repositories.booking_repository import booking_repository
from app.services.audit_service import audit_service
from app.services.credit_service import CreditResult, credit_service
from app.services.refund_service import refund_service

logger = logging.getLogger(__name__)

CANCELLED_ACTION = "booking_cancelled"


def _paid_with_credit(payment: Payment | None) -> bool:
    return payment is not None and payment.payment_type == PaymentType.BORROWER_CREDIT.value


def _credit_dict(party: str, result: CreditResult) -> dict[str, Any]:
    return {
        "party": party,
        "amount_cents": result.amount,
        "credit_id": str(result.credit_id) if result.credit_id else None,
        "created": result.created,
        "restored": result.restored,
    }


class CancellationService:
    """Cancel bookings for borrowers, owners and the acceptance-expiry sweep."""

    async def cancel(
        self,
        db: AsyncSession,
        booking_id: UUID,
        cancelled_by: str,
        actor_user_id: UUID | None = None,
        refund_to_credit: bool = False,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Cancel a booking and apply the matching policy branch.

        Args:
            db: Database session
            booking_id: Booking to cancel
            cancelled_by: borrower, owner or system_expired
            actor_user_id: Authenticated caller, None for internal callers
            refund_to_credit: Canceller takes credit instead of a card refund
            now: Current time

        Returns:
            dict: scenario, amounts, refund outcome and issued credits
        """
        try:
            cancelled_by = CancelledBy(cancelled_by)
        except ValueError:
            raise ValidationError("cancelled_by must be one of: borrower, owner, system_expired")

        now = as_utc(now or datetime.now(UTC))
        booking = await booking_repository.get_or_404(db, booking_id)

        if cancelled_by != CancelledBy.SYSTEM_EXPIRED:
            assert_acting_as(booking, cancelled_by.value, actor_user_id)

        if booking.settled:
            raise BookingStateError("Booking already settled; cannot cancel")
        if booking.completed:
            raise BookingStateError("Booking already completed; cannot cancel")
        if booking.cancelled:
            return await self._resume(db, booking, refund_to_credit, now)

        terms = self._compute_terms(booking, cancelled_by, now)
        event = BookingEvent.EXPIRE if cancelled_by == CancelledBy.SYSTEM_EXPIRED else BookingEvent.CANCEL
        assert_booking_transition(booking, event)

        claimed = await booking_repository.update(
            db,
            booking,
            self._claim_values(cancelled_by, terms, now),
            expect={"cancelled": False},
        )
        if claimed is None:
            # Someone else cancelled between our read and write.
            booking = await booking_repository.get_or_404(db, booking_id)
            return await self._resume(db, booking, refund_to_credit, now)

        logger.info(
            f"Booking {booking_id} cancelled by {cancelled_by.value} "
            f"(scenario={terms.scenario.value}, return={terms.canceller_return_cents}, "
            f"fee={terms.platform_fee_cents})"
        )
        return await self._apply_effects(db, claimed, refund_to_credit, now, already_cancelled=False)

    def _compute_terms(
        self,
        booking: Booking,
        cancelled_by: CancelledBy,
        now: datetime,
    ) -> CancellationTerms:
        deposit = settings.flat_deposit_cents

        if cancelled_by == CancelledBy.SYSTEM_EXPIRED:
            if not booking.borrower_paid or booking.owner_deposit_paid:
                raise BookingStateError(
                    "System expiry requires a paid borrower and an unpaid owner deposit",
                    borrower_paid=booking.borrower_paid,
                    owner_deposit_paid=booking.owner_deposit_paid,
                )
            try:
                deadline = acceptance_deadline(booking.created_at, booking.scheduled_start_at, now)
            except InvalidTimestamp as e:
                raise BookingStateError("Cannot compute acceptance deadline", invalid_field=e.field)
            if now <= deadline:
                raise BookingStateError(
                    "Acceptance window has not expired yet",
                    acceptance_deadline=deadline.isoformat(),
                )
            return pre_acceptance_terms(cancelled_by, deposit)

        if not booking.borrower_paid:
            raise BookingStateError("Borrower has not paid; nothing to cancel", borrower_paid=False)
        if not booking.owner_deposit_paid:
            return pre_acceptance_terms(cancelled_by, deposit)

        try:
            days = days_until(booking.scheduled_start_at, now)
        except InvalidTimestamp as e:
            raise BookingStateError("Booking start time missing or invalid", invalid_field=e.field)
        return post_acceptance_terms(cancelled_by, days, deposit)

    def _claim_values(
        self,
        cancelled_by: CancelledBy,
        terms: CancellationTerms,
        now: datetime,
    ) -> dict[str, Any]:
        values: dict[str, Any] = {
            "cancelled": True,
            "cancelled_by": "system" if cancelled_by == CancelledBy.SYSTEM_EXPIRED else cancelled_by.value,
            "cancelled_at": now,
            "cancel_scenario": terms.scenario.value,
            "status": SCENARIO_STATUS[terms.scenario],
            "cancel_canceller_return_cents": terms.canceller_return_cents,
            "cancel_platform_fee_cents": terms.platform_fee_cents,
            "needs_rebooking": True,
            "rebook_by": now + timedelta(days=settings.rebook_window_days),
        }
        if terms.scenario == CancellationScenario.SYSTEM_EXPIRED:
            values["refund_status"] = "credited_full"
            values["refund_amount_cents"] = terms.other_party_credit_cents
        elif terms.scenario not in POST_ACCEPTANCE_SCENARIOS:
            # Nothing was disbursed yet, so the borrower is made whole symbolically.
            values["refund_status"] = "refunded_full"
            values["refund_amount_cents"] = terms.other_party_credit_cents
        return values

    async def _resume(
        self,
        db: AsyncSession,
        booking: Booking,
        refund_to_credit: bool,
        now: datetime,
    ) -> dict[str, Any]:
        """Return success for an already-cancelled booking, finishing any missing effects."""
        if await audit_service.has_entry(db, booking.id, CANCELLED_ACTION):
            logger.info(f"Booking {booking.id} already cancelled; nothing to do")
            return self._response(booking, already_cancelled=True)

        logger.warning(f"Booking {booking.id} cancelled without completed effects; re-driving")
        return await self._apply_effects(db, booking, refund_to_credit, now, already_cancelled=True)

    async def _apply_effects(
        self,
        db: AsyncSession,
        booking: Booking,
        refund_to_credit: bool,
        now: datetime,
        already_cancelled: bool,
    ) -> dict[str, Any]:
        scenario = CancellationScenario(booking.cancel_scenario)
        booking_id = booking.id
        deposit = settings.flat_deposit_cents
        credits: list[dict[str, Any]] = []
        refund: dict[str, Any] | None = None
        platform_income_created = False

        if scenario not in POST_ACCEPTANCE_SCENARIOS:
            borrower_payment = await booking_repository.find_party_payment(db, booking, "borrower")
            credit = await credit_service.compensate(
                db,
                user_id=booking.borrower_id,
                booking_id=booking.id,
                paid_with_credit=_paid_with_credit(borrower_payment),
                amount=deposit,
                reason=f"Rebook credit: booking cancelled ({scenario.value})",
                now=now,
            )
            credits.append(_credit_dict("borrower", credit))
        else:
            canceller = booking.cancelled_by
            other = "owner" if canceller == "borrower" else "borrower"
            fee = booking.cancel_platform_fee_cents or 0
            canceller_return = booking.cancel_canceller_return_cents or 0

            if fee > 0:
                _, platform_income_created = await booking_repository.ensure_platform_income(
                    db, booking, fee, settings.credit_currency
                )
                # Reload: losing the fee-row race rolls the session back.
                booking = await booking_repository.get_or_404(db, booking_id)

            other_payment = await booking_repository.find_party_payment(db, booking, other)
            credit = await credit_service.compensate(
                db,
                user_id=booking.party_id(other),
                booking_id=booking.id,
                paid_with_credit=_paid_with_credit(other_payment),
                amount=deposit,
                reason=f"Rebook credit: {canceller} cancelled the booking",
                now=now,
            )
            credits.append(_credit_dict(other, credit))

            # Reload: a lost credit race rolls the session back and expires the row.
            booking = await booking_repository.get_or_404(db, booking_id)
            if canceller_return > 0:
                outcome = await refund_service.refund_or_credit(
                    db,
                    booking,
                    party=canceller,
                    amount=canceller_return,
                    idempotency_key=cancel_refund_key(booking.id, canceller, as_utc(booking.cancelled_at)),
                    reason=f"Early cancellation refund for booking {booking.id}",
                    prefer_credit=refund_to_credit,
                    now=now,
                )
                refund = outcome.to_dict()
            else:
                await booking_repository.update(
                    db, booking, {"refund_status": "forfeited", "refund_amount_cents": 0}
                )

        booking = await booking_repository.get_or_404(db, booking_id)
        actor_role = "system" if booking.cancelled_by == "system" else booking.cancelled_by
        try:
            await audit_service.log_booking_action(
                db,
                booking_id=booking_id,
                actor_role=actor_role,
                actor_user_id=None if actor_role == "system" else booking.party_id(actor_role),
                action=CANCELLED_ACTION,
                note=(
                    f"scenario={scenario.value}; canceller_return={booking.cancel_canceller_return_cents}; "
                    f"platform_fee={booking.cancel_platform_fee_cents}; "
                    f"refund_via={refund['via'] if refund else 'none'}"
                ),
                details={
                    "scenario": scenario.value,
                    "canceller_return_cents": booking.cancel_canceller_return_cents,
                    "platform_fee_cents": booking.cancel_platform_fee_cents,
                    "refund": refund,
                    "credits": credits,
                },
            )
        except IntegrityError:
            # A concurrent delivery finished the same cancellation first.
            await db.rollback()
            logger.info(f"Booking {booking_id} cancellation already completed by another request")
            booking = await booking_repository.get_or_404(db, booking_id)
            return self._response(booking, already_cancelled=True)

        response = self._response(booking, already_cancelled=already_cancelled)
        response.update(
            {
                "refund": refund,
                "credits": credits,
                "platform_income_created": platform_income_created,
            }
        )
        return response

    def _response(self, booking: Booking, already_cancelled: bool) -> dict[str, Any]:
        scenario = CancellationScenario(booking.cancel_scenario)
        if scenario in POST_ACCEPTANCE_SCENARIOS:
            message = get_policy_description(bool(booking.cancel_canceller_return_cents))
        elif scenario == CancellationScenario.SYSTEM_EXPIRED:
            message = "Owner did not accept in time; the borrower received a full rebook credit."
        else:
            message = "Cancelled before acceptance; the borrower received a full rebook credit."
        if already_cancelled:
            message = "Already cancelled"

        return {
            "ok": True,
            "booking_id": booking.id,
            "already_cancelled": already_cancelled,
            "cancelled_by": booking.cancelled_by,
            "scenario": scenario.value,
            "status": booking.status,
            "canceller_return_cents": booking.cancel_canceller_return_cents or 0,
            "platform_fee_cents": booking.cancel_platform_fee_cents or 0,
            "refund_status": booking.refund_status,
            "refund_amount_cents": booking.refund_amount_cents,
            "rebook_by": booking.rebook_by,
            "refund": None,
            "credits": [],
            "platform_income_created": False,
            "message": message,
        }


# Singleton instance
cancellation_service = CancellationService()
