"""Refund orchestration: gateway refund first, ledger credit otherwise.

The payment row is marked ``refund_status = "pending"`` with the
idempotency key before the gateway is called. A crash between a
successful gateway refund and the follow-up write therefore leaves a
pending intent; the next run re-sends the same key, the gateway returns
the refund it already made, and the reference is persisted then.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.booking import Booking
from app.models.payment import Payment, PaymentType
from app.repositories.booking_repository import booking_repository
from app.services.credit_service import CANCEL_REFUND_CREDIT, credit_service
from app.services.gateway_service import gateway_service

logger = logging.getLogger(__name__)

VIA_GATEWAY = "gateway"
VIA_CREDIT = "credit"
VIA_CREDIT_FALLBACK = "credit_fallback"


@dataclass
class RefundOutcome:
    """What happened to the canceller's money. Exactly one path completed."""

    via: str
    amount_cents: int
    refund_id: str | None = None
    refund_status: str | None = None
    credit_id: UUID | None = None
    credit_created: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["credit_id"] = str(self.credit_id) if self.credit_id else None
        return data


class RefundService:
    """Return part of a party's payment through the gateway or as credit."""

    async def refund_or_credit(
        self,
        db: AsyncSession,
        booking: Booking,
        party: str,
        amount: int,
        idempotency_key: str,
        reason: str,
        prefer_credit: bool = False,
        now: datetime | None = None,
    ) -> RefundOutcome:
        """Refund ``amount`` to ``party`` and record the outcome.

        Args:
            db: Database session
            booking: Cancelled booking
            party: borrower or owner
            amount: Amount in cents
            idempotency_key: Stable key for this refund across retries
            reason: Reason passed to the gateway and the credit
            prefer_credit: Caller asked for credit instead of a card refund
            now: Current time for credit expiry

        Returns:
            RefundOutcome: the refund or credit that was made
        """
        booking_id = booking.id
        payment = await booking_repository.find_party_payment(db, booking, party)
        user_id = booking.party_id(party)

        if payment and payment.refund_id:
            logger.info(f"Refund already recorded for payment {payment.id}: {payment.refund_id}")
            outcome = RefundOutcome(
                via=VIA_GATEWAY,
                amount_cents=payment.refunded_amount_cents or amount,
                refund_id=payment.refund_id,
                refund_status=payment.refund_status,
            )
        elif payment and payment.refund_status == "failed":
            # An earlier attempt failed; never retry the card after that.
            outcome = await self._credit(db, booking, user_id, amount, reason, VIA_CREDIT_FALLBACK, now)
            outcome.error = payment.refund_error
        elif not prefer_credit and self._can_refund(payment):
            outcome = await self._gateway_refund(
                db, booking, user_id, payment, amount, idempotency_key, reason, now
            )
        else:
            outcome = await self._credit(db, booking, user_id, amount, reason, VIA_CREDIT, now)

        summary = "refunded_partial" if outcome.via == VIA_GATEWAY else "credited_partial"
        booking = await booking_repository.get_or_404(db, booking_id)
        await booking_repository.update(
            db,
            booking,
            {"refund_status": summary, "refund_amount_cents": outcome.amount_cents},
        )
        return outcome

    def _can_refund(self, payment: Payment | None) -> bool:
        if payment is None or not payment.gateway_transaction_id:
            return False
        if payment.payment_type == PaymentType.BORROWER_CREDIT.value:
            return False
        return gateway_service.get_refund_gateway() is not None

    async def _gateway_refund(
        self,
        db: AsyncSession,
        booking: Booking,
        user_id: UUID,
        payment: Payment,
        amount: int,
        idempotency_key: str,
        reason: str,
        now: datetime | None,
    ) -> RefundOutcome:
        gateway = gateway_service.get_refund_gateway()
        # A pending intent from an interrupted run keeps its original key.
        key = payment.refund_idempotency_key or idempotency_key

        await booking_repository.save_payment(
            db, payment, {"refund_status": "pending", "refund_idempotency_key": key}
        )
        result = await gateway.process_refund(
            transaction_id=payment.gateway_transaction_id,
            amount=amount,
            reason=reason,
            idempotency_key=key,
        )

        if result.success:
            await booking_repository.save_payment(
                db,
                payment,
                {
                    "refund_id": result.refund_id,
                    "refund_status": "succeeded",
                    "refunded_amount_cents": amount,
                    "refund_error": None,
                },
            )
            logger.info(f"Gateway refund {result.refund_id} of {amount} for booking {booking.id}")
            return RefundOutcome(
                via=VIA_GATEWAY,
                amount_cents=amount,
                refund_id=result.refund_id,
                refund_status=result.status,
            )

        logger.warning(
            f"Gateway refund failed for booking {booking.id}, falling back to credit: {result.error_message}"
        )
        await booking_repository.save_payment(
            db, payment, {"refund_status": "failed", "refund_error": result.error_message}
        )
        outcome = await self._credit(db, booking, user_id, amount, reason, VIA_CREDIT_FALLBACK, now)
        outcome.error = result.error_message
        return outcome

    async def _credit(
        self,
        db: AsyncSession,
        booking: Booking,
        user_id: UUID,
        amount: int,
        reason: str,
        via: str,
        now: datetime | None,
    ) -> RefundOutcome:
        credit = await credit_service.ensure_credit(
            db,
            user_id=user_id,
            booking_id=booking.id,
            credit_type=CANCEL_REFUND_CREDIT,
            amount=amount,
            reason=reason,
            now=now,
        )
        return RefundOutcome(
            via=via,
            amount_cents=amount,
            credit_id=credit.credit_id,
            credit_created=credit.created,
        )


# Singleton instance
refund_service = RefundService()
