"""Time-window rules for the booking lifecycle.

Windows:
- acceptance: owner must deposit within 2h (start < 24h away), 4h (< 72h)
  or 8h of the booking being created
- check-in: 15 minutes before start until 60 minutes after start
- completion: no earlier than 20 minutes after start
- examiner refusal: start until 10 minutes after start
- no-show claim: from 30 minutes after start
- force majeure: 24 hours before start until start

All boundaries are inclusive. Missing or malformed timestamps raise
``InvalidTimestamp`` rather than falling back to a default.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

ACCEPTANCE_SHORT_NOTICE_HOURS = 2
ACCEPTANCE_MEDIUM_NOTICE_HOURS = 4
ACCEPTANCE_STANDARD_HOURS = 8

CHECK_IN_OPENS_BEFORE = timedelta(minutes=15)
CHECK_IN_CLOSES_AFTER = timedelta(minutes=60)
MIN_COMPLETE_MINUTES = 20
EXAMINER_REFUSAL_MINUTES = 10
NO_SHOW_CLAIM_MINUTES = 30
FORCE_MAJEURE_WINDOW = timedelta(hours=24)


class InvalidTimestamp(ValueError):
    """A required timestamp is missing or unparseable."""

    def __init__(self, field: str, value: object = None):
        self.field = field
        self.value = value
        super().__init__(f"{field} is missing or invalid: {value!r}")


def as_utc(value: datetime | str | None, field: str = "timestamp") -> datetime:
    """Normalize to an aware UTC datetime.

    Naive datetimes are taken to be UTC already (SQLite drops tzinfo).
    """
    if value is None:
        raise InvalidTimestamp(field)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidTimestamp(field, value)
    if not isinstance(value, datetime):
        raise InvalidTimestamp(field, value)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def acceptance_hours(scheduled_start: datetime | None, now: datetime) -> int:
    """Hours the owner has to accept, based on how close the start is."""
    start = as_utc(scheduled_start, "scheduled_start_at")
    hours_until_start = (start - as_utc(now, "now")).total_seconds() / 3600
    if hours_until_start < 24:
        return ACCEPTANCE_SHORT_NOTICE_HOURS
    if hours_until_start < 72:
        return ACCEPTANCE_MEDIUM_NOTICE_HOURS
    return ACCEPTANCE_STANDARD_HOURS


def acceptance_deadline(
    created_at: datetime | None,
    scheduled_start: datetime | None,
    now: datetime,
) -> datetime:
    created = as_utc(created_at, "created_at")
    return created + timedelta(hours=acceptance_hours(scheduled_start, now))


def is_acceptance_expired(
    created_at: datetime | None,
    scheduled_start: datetime | None,
    now: datetime,
) -> bool:
    """True once ``now`` is strictly past the acceptance deadline."""
    return as_utc(now, "now") > acceptance_deadline(created_at, scheduled_start, now)


@dataclass(frozen=True)
class CheckInWindow:
    booking_start: datetime
    booking_end: datetime
    opens_at: datetime
    closes_at: datetime

    def is_open(self, now: datetime) -> bool:
        return self.opens_at <= as_utc(now, "now") <= self.closes_at


def check_in_window(scheduled_start: datetime | None, duration_minutes: int | None) -> CheckInWindow:
    """Check-in window around the start.

    The close is anchored on the start, not the end; ``booking_end`` is
    reported for diagnostics only.
    """
    start = as_utc(scheduled_start, "scheduled_start_at")
    return CheckInWindow(
        booking_start=start,
        booking_end=start + timedelta(minutes=duration_minutes or 30),
        opens_at=start - CHECK_IN_OPENS_BEFORE,
        closes_at=start + CHECK_IN_CLOSES_AFTER,
    )


def completion_allowed_at(scheduled_start: datetime | None) -> datetime:
    return as_utc(scheduled_start, "scheduled_start_at") + timedelta(minutes=MIN_COMPLETE_MINUTES)


def examiner_refusal_window(scheduled_start: datetime | None) -> tuple[datetime, datetime]:
    start = as_utc(scheduled_start, "scheduled_start_at")
    return start, start + timedelta(minutes=EXAMINER_REFUSAL_MINUTES)


def no_show_claim_allowed_at(scheduled_start: datetime | None) -> datetime:
    return as_utc(scheduled_start, "scheduled_start_at") + timedelta(minutes=NO_SHOW_CLAIM_MINUTES)


def force_majeure_window(scheduled_start: datetime | None) -> tuple[datetime, datetime]:
    start = as_utc(scheduled_start, "scheduled_start_at")
    return start - FORCE_MAJEURE_WINDOW, start


def days_until(scheduled_start: datetime | None, now: datetime) -> float:
    """Fractional days from ``now`` to the start (negative once started)."""
    start = as_utc(scheduled_start, "scheduled_start_at")
    return (start - as_utc(now, "now")).total_seconds() / 86400
