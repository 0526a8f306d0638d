"""Booking audit trail service."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.admin import BookingAuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service for append-only booking audit logging."""

    async def log_booking_action(
        self,
        db: AsyncSession,
        booking_id: UUID,
        actor_role: str,
        action: str,
        actor_user_id: UUID | None = None,
        note: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> BookingAuditLog:
        """Append an audit entry and commit it.

        Args:
            db: Database session
            booking_id: Booking the action applied to
            actor_role: borrower, owner, admin or system
            action: Action tag (e.g., "booking_cancelled")
            actor_user_id: Acting user, None for system actions
            note: Free-text explanation
            details: Structured values (amounts, decisions, outcomes)

        Returns:
            Created audit log entry
        """
        entry = BookingAuditLog(
            booking_id=booking_id,
            actor_role=actor_role,
            actor_user_id=actor_user_id,
            action=action,
            note=note,
            details=details,
        )
        db.add(entry)
        await db.commit()
        logger.info(f"AUDIT booking={booking_id} action={action} actor={actor_role}:{actor_user_id}")
        return entry

    async def has_entry(self, db: AsyncSession, booking_id: UUID, action: str) -> bool:
        """Whether an action was already recorded; used as a completion marker on re-drive."""
        result = await db.execute(
            select(BookingAuditLog.id)
            .where(BookingAuditLog.booking_id == booking_id, BookingAuditLog.action == action)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_for_booking(self, db: AsyncSession, booking_id: UUID) -> list[BookingAuditLog]:
        """Audit entries for a booking, oldest first."""
        result = await db.execute(
            select(BookingAuditLog)
            .where(BookingAuditLog.booking_id == booking_id)
            .order_by(BookingAuditLog.created_at.asc())
        )
        return list(result.scalars().all())


# Singleton instance
audit_service = AuditService()
