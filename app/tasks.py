"""Celery background tasks."""

import asyncio
import logging

from celery import shared_task

from app.core.immutability import register_immutability_enforcement
from app.database import engine, get_db_context
from app.services.expiry_service import expiry_service

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


# ==================== EXPIRY TASKS ====================


@shared_task(bind=True, max_retries=3)
def expire_unaccepted_bookings(self, limit: int | None = None):
    """Cancel paid bookings whose owner missed the acceptance deadline.

    Runs every ``expiry_sweep_interval_minutes``. Each run handles one page
    of candidates; overlapping runs are harmless.
    """
    try:
        report = run_async(_expire_unaccepted_bookings(limit))
    except Exception as exc:
        logger.exception("Expiry sweep failed; retrying")
        raise self.retry(exc=exc, countdown=120)

    return {
        "status": "success",
        "scanned": report["scanned"],
        "expired_succeeded": report["expired_succeeded"],
        "invalid_timestamps": report["invalid_timestamps"],
    }


async def _expire_unaccepted_bookings(limit: int | None) -> dict:
    register_immutability_enforcement()
    try:
        async with get_db_context() as db:
            return await expiry_service.sweep(db, limit=limit)
    finally:
        # Each run gets a fresh event loop; pooled connections must not outlive it.
        await engine.dispose()
