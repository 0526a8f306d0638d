"""Booking record accessor.

The store only guarantees single-row atomicity, so every write here is one
``UPDATE bookings ... WHERE id = :id`` statement, optionally guarded by
expected column values, committed on its own and followed by a reload.
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.domain.booking_state import check_invariants
from app.models.booking import Booking
from app.models.payment import BORROWER_PAYMENT_TYPES, PAID_STATUSES, Payment, PaymentType

logger = logging.getLogger(__name__)


def _snapshot(booking: Booking) -> dict[str, Any]:
    return {column.key: getattr(booking, column.key) for column in Booking.__table__.columns}


class BookingRepository:
    """Load, guarded-update and reload bookings and their payment rows."""

    async def get(self, db: AsyncSession, booking_id: uuid.UUID) -> Booking | None:
        """Fresh read of one booking, bypassing the identity map."""
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, db: AsyncSession, booking_id: uuid.UUID) -> Booking:
        booking = await self.get(db, booking_id)
        if not booking:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def update(
        self,
        db: AsyncSession,
        booking: Booking,
        values: dict[str, Any],
        expect: dict[str, Any] | None = None,
    ) -> Booking | None:
        """Apply a partial update as a single compare-and-set.

        Args:
            db: Database session
            booking: Current row (used for the invariant check)
            values: Columns to write
            expect: Column values that must still hold for the write to apply

        Returns:
            Booking: the reloaded row, or None if ``expect`` no longer matched
        """
        check_invariants({**_snapshot(booking), **values})

        stmt = update(Booking).where(Booking.id == booking.id)
        for column, expected in (expect or {}).items():
            stmt = stmt.where(getattr(Booking, column) == expected)
        stmt = stmt.values(**values, updated_at=datetime.now(UTC)).execution_options(
            synchronize_session=False
        )

        result = await db.execute(stmt)
        await db.commit()
        if result.rowcount == 0:
            logger.info(f"Guarded update skipped for booking {booking.id}: expected {expect}")
            return None
        return await self.get_or_404(db, booking.id)

    async def list_acceptance_candidates(self, db: AsyncSession, limit: int) -> list[Booking]:
        """Paid bookings the owner has not accepted yet, oldest first."""
        result = await db.execute(
            select(Booking)
            .where(
                Booking.cancelled.is_(False),
                Booking.borrower_paid.is_(True),
                Booking.owner_deposit_paid.is_(False),
            )
            .order_by(Booking.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== PAYMENTS ====================

    async def list_payments(self, db: AsyncSession, booking_id: uuid.UUID) -> list[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_party_payment(
        self,
        db: AsyncSession,
        booking: Booking,
        party: str,
    ) -> Payment | None:
        """The payment the party made to enter this booking, if any.

        Prefers a row with a gateway charge reference, then any paid row.
        """
        payments = await self.list_payments(db, booking.id)
        if party == "borrower":
            candidates = [p for p in payments if p.payment_type in BORROWER_PAYMENT_TYPES]
        else:
            candidates = [p for p in payments if p.payment_type == PaymentType.OWNER_DEPOSIT.value]
        paid = [p for p in candidates if p.status in PAID_STATUSES]

        for payment in paid:
            if payment.gateway_transaction_id:
                return payment
        return paid[0] if paid else (candidates[0] if candidates else None)

    async def find_platform_income(self, db: AsyncSession, booking_id: uuid.UUID) -> Payment | None:
        result = await db.execute(
            select(Payment).where(
                Payment.booking_id == booking_id,
                Payment.payment_type == PaymentType.PLATFORM_INCOME_CANCEL_FEE.value,
            )
        )
        return result.scalars().first()

    async def ensure_platform_income(
        self,
        db: AsyncSession,
        booking: Booking,
        amount_cents: int,
        currency: str,
    ) -> tuple[Payment, bool]:
        """Insert the cancellation fee income row once per booking.

        Returns:
            tuple: (payment row, created)
        """
        booking_id = booking.id
        existing = await self.find_platform_income(db, booking_id)
        if existing:
            return existing, False

        payment = Payment(
            booking_id=booking_id,
            user_id=None,
            payment_type=PaymentType.PLATFORM_INCOME_CANCEL_FEE.value,
            status="succeeded",
            amount=amount_cents,
            currency=currency,
        )
        db.add(payment)
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent cancellation inserted the row first.
            await db.rollback()
            existing = await self.find_platform_income(db, booking_id)
            if existing is None:
                raise
            return existing, False
        logger.info(f"Platform cancel fee {amount_cents} recorded for booking {booking_id}")
        return payment, True

    async def save_payment(self, db: AsyncSession, payment: Payment, values: dict[str, Any]) -> Payment:
        """Single-row update of a payment, committed immediately."""
        for key, value in values.items():
            setattr(payment, key, value)
        await db.commit()
        return payment


booking_repository = BookingRepository()
