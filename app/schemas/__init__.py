"""Pydantic schemas for API validation."""

from app.schemas.admin import (
    AuditLogResponse,
    DisputeResponse,
    ExaminerRefusalRequest,
    ExpirySweepRequest,
    ExpirySweepResponse,
    MarkPayoutPaidRequest,
    NoShowClaimRequest,
    PayoutResponse,
    ResolutionResponse,
    ResolveNoShowRequest,
    ResolveReviewRequest,
)
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

__all__ = [
    # Booking lifecycle
    "CancelBookingRequest",
    "CancelBookingResponse",
    "CheckInRequest",
    "CheckInResponse",
    "CompleteBookingRequest",
    "CompleteBookingResponse",
    "DepositChoiceRequest",
    "DepositChoiceResponse",
    "ForceMajeureRequest",
    "ForceMajeureResponse",
    # Disputes
    "NoShowClaimRequest",
    "ExaminerRefusalRequest",
    "DisputeResponse",
    # Admin
    "ResolveReviewRequest",
    "ResolveNoShowRequest",
    "ResolutionResponse",
    "MarkPayoutPaidRequest",
    "PayoutResponse",
    "AuditLogResponse",
    # Internal
    "ExpirySweepRequest",
    "ExpirySweepResponse",
]
