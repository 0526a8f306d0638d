"""Credit ledger service.

Issuance is idempotent on (user, booking, credit_type) among available
credits; the partial unique index on ``credits`` backs this up when two
invocations race.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.payment import Credit

logger = logging.getLogger(__name__)

REBOOK_CREDIT = "rebook_credit"
CANCEL_REFUND_CREDIT = "cancel_refund_credit"


@dataclass
class CreditResult:
    credit_id: UUID | None
    created: bool
    restored: int = 0
    amount: int = 0


class CreditService:
    """Issue and restore compensating credits."""

    async def _find_available(
        self,
        db: AsyncSession,
        user_id: UUID,
        booking_id: UUID,
        credit_type: str,
    ) -> Credit | None:
        result = await db.execute(
            select(Credit).where(
                Credit.user_id == user_id,
                Credit.booking_id == booking_id,
                Credit.credit_type == credit_type,
                Credit.status == "available",
            )
        )
        return result.scalars().first()

    async def ensure_credit(
        self,
        db: AsyncSession,
        user_id: UUID,
        booking_id: UUID,
        credit_type: str,
        amount: int,
        reason: str,
        now: datetime | None = None,
    ) -> CreditResult:
        """Issue a credit unless an available one already exists for the key.

        Args:
            db: Database session
            user_id: Credit owner
            booking_id: Booking the credit compensates for
            credit_type: rebook_credit or cancel_refund_credit
            amount: Amount in cents
            reason: Human-readable reason
            now: Issue time (defaults to the current time)

        Returns:
            CreditResult with ``created`` False on a duplicate request
        """
        existing = await self._find_available(db, user_id, booking_id, credit_type)
        if existing:
            logger.info(f"Credit {credit_type} already available for user {user_id} booking {booking_id}")
            return CreditResult(credit_id=existing.id, created=False, amount=existing.amount)

        now = now or datetime.now(UTC)
        credit = Credit(
            user_id=user_id,
            booking_id=booking_id,
            credit_type=credit_type,
            amount=amount,
            currency=settings.credit_currency,
            status="available",
            reason=reason,
            expires_at=now + timedelta(days=settings.rebook_window_days),
        )
        db.add(credit)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race with a concurrent issuance of the same credit.
            await db.rollback()
            existing = await self._find_available(db, user_id, booking_id, credit_type)
            if existing is None:
                raise
            return CreditResult(credit_id=existing.id, created=False, amount=existing.amount)

        logger.info(f"Issued {credit_type} of {amount} to user {user_id} for booking {booking_id}")
        return CreditResult(credit_id=credit.id, created=True, amount=amount)

    async def _was_restored(self, db: AsyncSession, user_id: UUID, booking_id: UUID) -> bool:
        result = await db.execute(
            select(Credit.id)
            .where(Credit.user_id == user_id, Credit.restored_from_booking_id == booking_id)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def restore_used_credits(
        self,
        db: AsyncSession,
        user_id: UUID,
        booking_id: UUID,
    ) -> int:
        """Make credits the user spent on ``booking_id`` available again.

        Returns:
            Number of credits restored
        """
        result = await db.execute(
            update(Credit)
            .where(
                Credit.user_id == user_id,
                Credit.used_on_booking_id == booking_id,
                Credit.status == "used",
            )
            .values(
                status="available",
                used_at=None,
                used_on_booking_id=None,
                restored_from_booking_id=booking_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        await db.commit()
        if result.rowcount:
            logger.info(f"Restored {result.rowcount} used credit(s) for user {user_id} from booking {booking_id}")
        return result.rowcount

    async def compensate(
        self,
        db: AsyncSession,
        user_id: UUID,
        booking_id: UUID,
        paid_with_credit: bool,
        amount: int,
        reason: str,
        now: datetime | None = None,
    ) -> CreditResult:
        """Give a party their deposit back as credit.

        A party who paid with credit gets those credits restored; anyone
        else (or a credit payer with nothing left to restore) gets a new
        rebook credit.
        """
        if paid_with_credit:
            restored = await self.restore_used_credits(db, user_id, booking_id)
            if restored or await self._was_restored(db, user_id, booking_id):
                return CreditResult(credit_id=None, created=False, restored=restored, amount=amount)
        return await self.ensure_credit(
            db,
            user_id=user_id,
            booking_id=booking_id,
            credit_type=REBOOK_CREDIT,
            amount=amount,
            reason=reason,
            now=now,
        )


# Singleton instance
credit_service = CreditService()
