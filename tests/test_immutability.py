"""Tests for the append-only booking audit log."""

import pytest

from app.core.immutability import ImmutabilityViolationError
from app.services.audit_service import audit_service


class TestAuditLogImmutability:
    @pytest.mark.asyncio
    async def test_update_is_blocked(self, db, make_booking):
        """Test editing an audit entry raises instead of writing."""
        booking = await make_booking()
        entry = await audit_service.log_booking_action(
            db, booking_id=booking.id, actor_role="system", action="settlement_attempted"
        )

        entry.note = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            await db.commit()
        await db.rollback()

    @pytest.mark.asyncio
    async def test_delete_is_blocked(self, db, make_booking):
        """Test deleting an audit entry raises instead of writing."""
        booking = await make_booking()
        booking_id = booking.id
        entry = await audit_service.log_booking_action(
            db, booking_id=booking.id, actor_role="system", action="settlement_attempted"
        )

        await db.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            await db.commit()
        await db.rollback()

        assert await audit_service.has_entry(db, booking_id, "settlement_attempted")
