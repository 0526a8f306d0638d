"""Schemas for disputes, admin decisions and internal jobs."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NoShowClaimRequest(BaseModel):
    """Schema for claiming the other party did not show."""

    note: str | None = Field(None, max_length=2000)


class ExaminerRefusalRequest(BaseModel):
    """Schema for reporting an examiner refusal."""

    reason_code: Literal[
        "motorcycle_issue",
        "not_ready",
        "registry_reschedule",
        "weather_conditions",
        "other",
    ]
    note: str | None = Field(None, max_length=2000)


class DisputeResponse(BaseModel):
    """Schema for no-show and examiner refusal responses."""

    ok: bool
    booking_id: UUID
    already_recorded: bool
    needs_review: bool
    review_reason: str | None = None
    needs_rebooking: bool
    no_show_claimed_by: str | None = None
    tag_reason: str | None = None
    bike_invalid: bool


class ResolveReviewRequest(BaseModel):
    """Schema for an admin review decision."""

    decision: Literal["reject_clear_flags", "approve_settle", "owner_fault", "borrower_fault"]
    note: str | None = Field(None, max_length=2000)


class ResolveNoShowRequest(BaseModel):
    """Schema for an admin no-show decision."""

    decision: Literal["approve_owner_no_show", "approve_borrower_no_show", "reject_claim"]
    note: str | None = Field(None, max_length=2000)


class ResolutionResponse(BaseModel):
    """Schema for admin resolution responses."""

    ok: bool
    booking_id: UUID
    decision: str
    needs_review: bool
    review_reason: str | None = None
    treat_as_owner_no_show: bool
    treat_as_borrower_no_show: bool
    settled: bool
    settlement: dict[str, Any] | None = None


class MarkPayoutPaidRequest(BaseModel):
    """Schema for recording a manual payout."""

    payout_type: Literal["owner_payout", "borrower_compensation"] = "owner_payout"
    payout_method: str | None = Field(None, max_length=50)
    payout_reference: str | None = Field(None, max_length=255)


class PayoutResponse(BaseModel):
    """Schema for payout bookkeeping response."""

    ok: bool
    booking_id: UUID
    payment_id: UUID
    payout_type: str
    amount_cents: int
    status: str
    already_paid: bool
    payout_paid_at: datetime | None = None
    payout_method: str | None = None
    payout_reference: str | None = None
    owner_payout_done: bool


class AuditLogResponse(BaseModel):
    """Schema for an audit trail entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    actor_role: str
    actor_user_id: UUID | None = None
    action: str
    note: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


class ExpirySweepRequest(BaseModel):
    """Schema for a manual expiry sweep run."""

    limit: int | None = Field(None, ge=1)


class ExpirySweepResponse(BaseModel):
    """Schema for expiry sweep report."""

    ok: bool
    now: datetime
    limit: int
    scanned: int
    expired_found: int
    expired_processed: int
    expired_succeeded: int
    invalid_timestamps: int
    sample: list[dict[str, Any]]
