"""Settlement trigger.

Payout math lives in the remote settlement service. This module only asks
it to settle a booking and reports what came back; it never raises on a
remote failure, so the local change that triggered it stays in place.
"""

import logging
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.services.audit_service import audit_service

logger = logging.getLogger(__name__)


class SettlementService:
    """Calls the remote settlement endpoint with ``{booking_id, action: "settle"}``."""

    def __init__(self) -> None:
        """Initialize settlement service."""
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.settlement_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def trigger(
        self,
        db: AsyncSession,
        booking_id: UUID,
        reason: str,
        actor_role: str = "system",
        actor_user_id: UUID | None = None,
    ) -> dict[str, Any]:
        """Request settlement and record the attempt.

        Args:
            db: Database session
            booking_id: Booking to settle
            reason: What prompted settlement (completion, admin decision...)
            actor_role: Role recorded on the audit entry
            actor_user_id: User recorded on the audit entry

        Returns:
            dict: ``attempted``, ``ok``, ``http_status`` and the remote
            ``response`` body, or ``error`` when the call itself failed
        """
        if not settings.settlement_url:
            logger.warning(f"Settlement not configured; booking {booking_id} left unsettled")
            attempt: dict[str, Any] = {
                "attempted": False,
                "ok": False,
                "error": "Settlement endpoint not configured",
            }
        else:
            attempt = await self._post(booking_id)

        await audit_service.log_booking_action(
            db,
            booking_id=booking_id,
            actor_role=actor_role,
            actor_user_id=actor_user_id,
            action="settlement_attempted",
            note=f"reason={reason}; ok={attempt['ok']}; http_status={attempt.get('http_status')}",
            details={"reason": reason, **{k: v for k, v in attempt.items() if k != "response"}},
        )
        return attempt

    async def _post(self, booking_id: UUID) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if settings.settlement_service_token:
            headers["Authorization"] = f"Bearer {settings.settlement_service_token}"

        try:
            response = await self.http_client.post(
                settings.settlement_url,
                json={"booking_id": str(booking_id), "action": "settle"},
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error(f"Settlement call failed for booking {booking_id}: {e}")
            return {"attempted": True, "ok": False, "error": str(e)}

        try:
            body: Any = response.json()
        except ValueError:
            body = {"raw": response.text}

        if response.is_success:
            logger.info(f"Settlement accepted for booking {booking_id} ({response.status_code})")
        else:
            logger.warning(f"Settlement rejected for booking {booking_id}: {response.status_code} {body}")

        return {
            "attempted": True,
            "ok": response.is_success,
            "http_status": response.status_code,
            "response": body,
        }


# Singleton instance
settlement_service = SettlementService()
