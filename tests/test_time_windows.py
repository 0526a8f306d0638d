"""Tests for lifecycle time windows."""

from datetime import UTC, datetime, timedelta

import pytest

from app.domain.time_windows import (
    InvalidTimestamp,
    acceptance_deadline,
    acceptance_hours,
    as_utc,
    check_in_window,
    completion_allowed_at,
    days_until,
    examiner_refusal_window,
    force_majeure_window,
    is_acceptance_expired,
    no_show_claim_allowed_at,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class TestAsUtc:
    def test_naive_is_treated_as_utc(self):
        """Test a naive datetime is read as UTC, not local time."""
        assert as_utc(datetime(2026, 3, 2, 12, 0)) == NOW

    def test_offset_is_converted(self):
        """Test an offset-aware value is converted to UTC."""
        assert as_utc("2026-03-02T07:00:00-05:00") == NOW

    def test_z_suffix_is_parsed(self):
        """Test ISO strings with a Z suffix parse."""
        assert as_utc("2026-03-02T12:00:00Z") == NOW

    @pytest.mark.parametrize("value", [None, "", "not-a-date", 12345])
    def test_missing_or_garbage_raises(self, value):
        """Test missing and malformed timestamps are rejected, never defaulted."""
        with pytest.raises(InvalidTimestamp) as exc_info:
            as_utc(value, "scheduled_start_at")
        assert exc_info.value.field == "scheduled_start_at"


class TestAcceptanceWindow:
    @pytest.mark.parametrize(
        "hours_to_start,expected",
        [(3, 2), (23.9, 2), (24, 4), (71.9, 4), (72, 8), (240, 8)],
    )
    def test_hours_by_notice(self, hours_to_start, expected):
        """Test the acceptance window shrinks as the start gets closer."""
        start = NOW + timedelta(hours=hours_to_start)
        assert acceptance_hours(start, NOW) == expected

    def test_short_notice_expired_after_two_hours(self):
        """Test a booking created 3h ago starting in 10h is past its 2h window."""
        created = NOW - timedelta(hours=3)
        start = NOW + timedelta(hours=10)
        assert acceptance_deadline(created, start, NOW) == NOW - timedelta(hours=1)
        assert is_acceptance_expired(created, start, NOW) is True

    def test_deadline_itself_is_not_expired(self):
        """Test expiry requires now to be strictly past the deadline."""
        created = NOW - timedelta(hours=2)
        start = NOW + timedelta(hours=10)
        assert is_acceptance_expired(created, start, NOW) is False

    def test_missing_start_raises(self):
        """Test a missing start time cannot produce a deadline."""
        with pytest.raises(InvalidTimestamp):
            acceptance_deadline(NOW, None, NOW)


class TestCheckInWindow:
    def test_bounds(self):
        """Test check-in opens 15 minutes before and closes 60 minutes after the start."""
        window = check_in_window(NOW, 30)
        assert window.opens_at == NOW - timedelta(minutes=15)
        assert window.closes_at == NOW + timedelta(minutes=60)
        assert window.booking_end == NOW + timedelta(minutes=30)

    def test_bounds_are_inclusive(self):
        """Test both ends of the window accept a check-in."""
        window = check_in_window(NOW, 30)
        assert window.is_open(window.opens_at)
        assert window.is_open(window.closes_at)
        assert not window.is_open(window.opens_at - timedelta(seconds=1))
        assert not window.is_open(window.closes_at + timedelta(seconds=1))

    def test_missing_duration_defaults_to_thirty_minutes(self):
        """Test the reported end falls back to a 30 minute slot."""
        assert check_in_window(NOW, None).booking_end == NOW + timedelta(minutes=30)


class TestOtherWindows:
    def test_completion_allowed_twenty_minutes_after_start(self):
        """Test completion opens 20 minutes after the start."""
        assert completion_allowed_at(NOW) == NOW + timedelta(minutes=20)

    def test_examiner_refusal_window(self):
        """Test refusals are accepted from the start until 10 minutes after."""
        assert examiner_refusal_window(NOW) == (NOW, NOW + timedelta(minutes=10))

    def test_no_show_claim_after_thirty_minutes(self):
        """Test no-show claims open 30 minutes after the start."""
        assert no_show_claim_allowed_at(NOW) == NOW + timedelta(minutes=30)

    def test_force_majeure_window(self):
        """Test force majeure runs from 24 hours before the start until the start."""
        assert force_majeure_window(NOW) == (NOW - timedelta(hours=24), NOW)

    def test_days_until(self):
        """Test fractional days to the start."""
        assert days_until(NOW + timedelta(days=5, hours=12), NOW) == pytest.approx(5.5)
        assert days_until(NOW - timedelta(days=1), NOW) == pytest.approx(-1)
