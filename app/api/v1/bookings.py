"""Booking lifecycle endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id, get_db, is_admin
from app.core.exceptions import AuthorizationError
from app.schemas.booking import (
    CancelBookingRequest,
    CancelBookingResponse,
    CheckInRequest,
    CheckInResponse,
    CompleteBookingRequest,
    CompleteBookingResponse,
    DepositChoiceRequest,
    DepositChoiceResponse,
    ForceMajeureRequest,
    ForceMajeureResponse,
)
from app.services.cancellation_service import cancellation_service
from app.services.lifecycle_service import lifecycle_service

router = APIRouter()


@router.post("/{booking_id}/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    booking_id: UUID,
    request: CancelBookingRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Cancel a booking.

    Participants cancel as themselves. ``system_expired`` is reserved for
    the administrator; the scheduled sweep calls the service directly.
    """
    if request.cancelled_by == "system_expired" and not is_admin(user_id):
        raise AuthorizationError("Only the administrator can expire a booking")

    return await cancellation_service.cancel(
        db,
        booking_id,
        request.cancelled_by,
        actor_user_id=None if request.cancelled_by == "system_expired" else user_id,
        refund_to_credit=request.refund_to_credit,
    )


@router.post("/{booking_id}/check-in", response_model=CheckInResponse)
async def check_in(
    booking_id: UUID,
    request: CheckInRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Check in at the test site."""
    return await lifecycle_service.check_in(db, booking_id, request.actor, actor_user_id=user_id)


@router.post("/{booking_id}/complete", response_model=CompleteBookingResponse)
async def complete_booking(
    booking_id: UUID,
    request: CompleteBookingRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Confirm the road test is done; settles once both parties confirm."""
    return await lifecycle_service.complete(
        db,
        booking_id,
        request.actor,
        owner_deposit_choice=request.owner_deposit_choice,
        actor_user_id=user_id,
    )


@router.post("/{booking_id}/deposit-choice", response_model=DepositChoiceResponse)
async def set_deposit_choice(
    booking_id: UUID,
    request: DepositChoiceRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Record whether the owner wants the deposit refunded or kept as credit."""
    return await lifecycle_service.set_owner_deposit_choice(
        db, booking_id, request.owner_deposit_choice, actor_user_id=user_id
    )


@router.post("/{booking_id}/force-majeure", response_model=ForceMajeureResponse)
async def agree_force_majeure(
    booking_id: UUID,
    request: ForceMajeureRequest,
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Agree that the rental cannot go ahead."""
    return await lifecycle_service.agree_force_majeure(db, booking_id, request.actor, actor_user_id=user_id)
