"""Dispute endpoints raised by booking participants."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, get_db
from app.schemas.admin import DisputeResponse, ExaminerRefusalRequest, NoShowClaimRequest
from app.services.dispute_service import dispute_service

router = APIRouter()


@router.post("/{booking_id}/no-show", response_model=DisputeResponse)
async def claim_no_show(
    booking_id: UUID,
    request: NoShowClaimRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Claim the other party did not turn up. The caller's role is inferred."""
    return await dispute_service.claim_no_show(db, booking_id, user_id, note=request.note)


@router.post("/{booking_id}/examiner-refusal", response_model=DisputeResponse)
async def report_examiner_refusal(
    booking_id: UUID,
    request: ExaminerRefusalRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Report that the examiner refused to run the road test."""
    return await dispute_service.examiner_refusal(
        db, booking_id, user_id, request.reason_code, note=request.note
    )
