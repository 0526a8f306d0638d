"""Admin endpoints for review resolution and payout bookkeeping."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_admin, get_db
from app.repositories.booking_repository import booking_repository
from app.schemas.admin import (
    AuditLogResponse,
    MarkPayoutPaidRequest,
    PayoutResponse,
    ResolutionResponse,
    ResolveNoShowRequest,
    ResolveReviewRequest,
)
from app.services.admin_service import admin_service
from app.services.audit_service import audit_service

router = APIRouter()


# ============ REVIEW ============


@router.post("/bookings/{booking_id}/resolve-review", response_model=ResolutionResponse)
async def resolve_review(
    booking_id: UUID,
    request: ResolveReviewRequest,
    admin_id: Annotated[UUID, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Resolve a booking under review (admin only)."""
    return await admin_service.resolve_review(
        db, booking_id, request.decision, admin_user_id=admin_id, note=request.note
    )


@router.post("/bookings/{booking_id}/resolve-no-show", response_model=ResolutionResponse)
async def resolve_no_show(
    booking_id: UUID,
    request: ResolveNoShowRequest,
    admin_id: Annotated[UUID, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Approve or reject a no-show claim (admin only)."""
    return await admin_service.resolve_no_show(
        db, booking_id, request.decision, admin_user_id=admin_id, note=request.note
    )


# ============ PAYOUTS ============


@router.post("/bookings/{booking_id}/payouts/mark-paid", response_model=PayoutResponse)
async def mark_payout_paid(
    booking_id: UUID,
    request: MarkPayoutPaidRequest,
    admin_id: Annotated[UUID, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Record a manual payout as sent (admin only)."""
    return await admin_service.mark_payout_paid(
        db,
        booking_id,
        request.payout_type,
        admin_user_id=admin_id,
        payout_method=request.payout_method,
        payout_reference=request.payout_reference,
    )


# ============ AUDIT ============


@router.get("/bookings/{booking_id}/audit-log", response_model=list[AuditLogResponse])
async def get_audit_log(
    booking_id: UUID,
    admin_id: Annotated[UUID, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list:
    """List a booking's audit trail, oldest first (admin only)."""
    await booking_repository.get_or_404(db, booking_id)
    return await audit_service.list_for_booking(db, booking_id)
