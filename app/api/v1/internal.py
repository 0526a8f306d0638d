"""Internal job endpoints, guarded by the shared admin key."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, require_admin_key
from app.schemas.admin import ExpirySweepRequest, ExpirySweepResponse
from app.services.expiry_service import expiry_service

router = APIRouter()


@router.post(
    "/expire-bookings",
    response_model=ExpirySweepResponse,
    dependencies=[Depends(require_admin_key)],
)
async def expire_bookings(
    db: Annotated[AsyncSession, Depends(get_db)],
    request: ExpirySweepRequest | None = None,
) -> dict:
    """Expire bookings the owner did not accept in time.

    Processes one page of candidates; schedulers call this repeatedly.
    """
    return await expiry_service.sweep(db, limit=request.limit if request else None)
