"""Acceptance-expiry sweep.

Cancels paid bookings whose owner did not deposit before the acceptance
deadline. Safe to run repeatedly or concurrently: cancellation is
idempotent per booking.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import AppException
from app.domain.cancellation_policy import CancelledBy
from app.domain.time_windows import InvalidTimestamp, acceptance_deadline, as_utc
from app.repositories.booking_repository import booking_repository
from app.services.cancellation_service import cancellation_service

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 10


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return settings.expiry_sweep_default_limit
    return max(1, min(int(limit), settings.expiry_sweep_max_limit))


class ExpiryService:
    """Scan unaccepted bookings and expire the overdue ones."""

    async def sweep(
        self,
        db: AsyncSession,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Run one page of the sweep.

        Args:
            db: Database session
            limit: Page size, clamped to 1..expiry_sweep_max_limit
            now: Current time

        Returns:
            dict: scan counters and a sample of per-booking results
        """
        now = as_utc(now or datetime.now(UTC))
        limit = clamp_limit(limit)
        candidates = await booking_repository.list_acceptance_candidates(db, limit)

        expired_found = 0
        processed = 0
        succeeded = 0
        invalid = 0
        results: list[dict[str, Any]] = []

        # Plain values so later commits in the loop never touch these rows.
        rows = [(b.id, b.created_at, b.scheduled_start_at) for b in candidates]

        for booking_id, created_at, scheduled_start_at in rows:
            try:
                deadline = acceptance_deadline(created_at, scheduled_start_at, now)
            except InvalidTimestamp as e:
                invalid += 1
                logger.warning(f"Skipping booking {booking_id} in expiry sweep: {e}")
                results.append({"booking_id": str(booking_id), "ok": False, "error": str(e)})
                continue

            if now <= deadline:
                continue

            expired_found += 1
            processed += 1
            try:
                outcome = await cancellation_service.cancel(
                    db,
                    booking_id,
                    CancelledBy.SYSTEM_EXPIRED.value,
                    now=now,
                )
            except AppException as e:
                logger.error(f"Expiry of booking {booking_id} failed: {e.detail}")
                results.append(
                    {
                        "booking_id": str(booking_id),
                        "ok": False,
                        "status_code": e.status_code,
                        "error": e.detail,
                    }
                )
                continue

            succeeded += 1
            results.append(
                {
                    "booking_id": str(booking_id),
                    "ok": True,
                    "deadline": deadline.isoformat(),
                    "already_cancelled": outcome["already_cancelled"],
                }
            )

        logger.info(
            f"Expiry sweep: scanned={len(rows)} expired={expired_found} "
            f"succeeded={succeeded} invalid={invalid}"
        )
        return {
            "ok": True,
            "now": now.isoformat(),
            "limit": limit,
            "scanned": len(rows),
            "expired_found": expired_found,
            "expired_processed": processed,
            "expired_succeeded": succeeded,
            "invalid_timestamps": invalid,
            "sample": results[:SAMPLE_SIZE],
        }


# Singleton instance
expiry_service = ExpiryService()
