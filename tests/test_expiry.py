"""Tests for the acceptance-expiry sweep."""

from datetime import timedelta

import pytest

from app.models.booking import Booking
from app.repositories.booking_repository import booking_repository
from app.services.expiry_service import clamp_limit, expiry_service
from tests.conftest import NOW


def _unaccepted(**overrides) -> dict:
    values = {
        "owner_deposit_paid": False,
        "owner_deposit_paid_at": None,
        "status": "awaiting_acceptance",
        "created_at": NOW - timedelta(hours=3),
        "scheduled_start_at": NOW + timedelta(hours=10),
    }
    values.update(overrides)
    return values


class TestClampLimit:
    def test_default(self):
        """Test a missing limit falls back to 50."""
        assert clamp_limit(None) == 50

    @pytest.mark.parametrize("raw,expected", [(0, 1), (-5, 1), (1, 1), (200, 200), (500, 200)])
    def test_bounds(self, raw, expected):
        """Test limits are clamped to 1..200."""
        assert clamp_limit(raw) == expected


class TestExpirySweep:
    @pytest.mark.asyncio
    async def test_expires_overdue_booking(self, db, make_booking):
        """Test a short-notice booking unaccepted after three hours is cancelled."""
        booking: Booking = await make_booking(**_unaccepted())

        result = await expiry_service.sweep(db, now=NOW)

        assert result["scanned"] == 1
        assert result["expired_found"] == 1
        assert result["expired_processed"] == 1
        assert result["expired_succeeded"] == 1
        assert result["invalid_timestamps"] == 0
        assert result["limit"] == 50
        sample = result["sample"][0]
        assert sample["booking_id"] == str(booking.id)
        assert sample["ok"] is True
        assert sample["deadline"] == (NOW - timedelta(hours=1)).isoformat()
        assert sample["already_cancelled"] is False

        refreshed = await booking_repository.get(db, booking.id)
        assert refreshed.cancelled is True
        assert refreshed.cancelled_by == "system"

    @pytest.mark.asyncio
    async def test_skips_booking_within_deadline(self, db, make_booking):
        """Test a booking still inside its acceptance window is left alone."""
        booking = await make_booking(**_unaccepted(created_at=NOW - timedelta(hours=1)))

        result = await expiry_service.sweep(db, now=NOW)

        assert result["scanned"] == 1
        assert result["expired_found"] == 0
        assert result["sample"] == []
        refreshed = await booking_repository.get(db, booking.id)
        assert refreshed.cancelled is False

    @pytest.mark.asyncio
    async def test_accepted_and_cancelled_bookings_are_not_scanned(self, db, make_booking):
        """Test only paid, unaccepted, live bookings are candidates."""
        await make_booking(created_at=NOW - timedelta(days=2))
        await make_booking(**_unaccepted(cancelled=True, status="cancelled"))

        result = await expiry_service.sweep(db, now=NOW)

        assert result["scanned"] == 0

    @pytest.mark.asyncio
    async def test_missing_start_is_counted_not_defaulted(self, db, make_booking):
        """Test a booking without a start time is reported and skipped."""
        booking = await make_booking(**_unaccepted(scheduled_start_at=None))

        result = await expiry_service.sweep(db, now=NOW)

        assert result["invalid_timestamps"] == 1
        assert result["expired_found"] == 0
        assert result["sample"][0]["ok"] is False
        assert "scheduled_start_at" in result["sample"][0]["error"]
        refreshed = await booking_repository.get(db, booking.id)
        assert refreshed.cancelled is False

    @pytest.mark.asyncio
    async def test_limit_pages_oldest_first(self, db, make_booking):
        """Test the limit caps the scan to the oldest candidates."""
        oldest = await make_booking(**_unaccepted(created_at=NOW - timedelta(hours=5)))
        await make_booking(**_unaccepted(created_at=NOW - timedelta(hours=4)))

        result = await expiry_service.sweep(db, limit=0, now=NOW)

        assert result["limit"] == 1
        assert result["scanned"] == 1
        assert result["sample"][0]["booking_id"] == str(oldest.id)

    @pytest.mark.asyncio
    async def test_second_sweep_finds_nothing(self, db, make_booking):
        """Test an expired booking is not picked up again."""
        await make_booking(**_unaccepted())
        await expiry_service.sweep(db, now=NOW)

        result = await expiry_service.sweep(db, now=NOW + timedelta(minutes=15))

        assert result["scanned"] == 0
