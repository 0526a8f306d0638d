"""Booking lifecycle request and response schemas."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

Party = Literal["borrower", "owner"]
DepositChoice = Literal["refund", "keep"]


# ============ REQUESTS ============


class CancelBookingRequest(BaseModel):
    """Schema for cancelling a booking."""

    cancelled_by: Literal["borrower", "owner", "system_expired"]
    refund_to_credit: bool = False


class CheckInRequest(BaseModel):
    """Schema for checking in at the test site."""

    actor: Party


class CompleteBookingRequest(BaseModel):
    """Schema for confirming the road test is done."""

    actor: Party
    owner_deposit_choice: DepositChoice | None = None


class DepositChoiceRequest(BaseModel):
    """Schema for the owner's deposit choice."""

    owner_deposit_choice: DepositChoice


class ForceMajeureRequest(BaseModel):
    """Schema for agreeing to a force majeure cancellation."""

    actor: Party


# ============ RESPONSES ============


class CreditIssued(BaseModel):
    """A credit created or restored during cancellation."""

    party: str
    amount_cents: int
    credit_id: str | None = None
    created: bool
    restored: int = 0


class RefundSummary(BaseModel):
    """How the canceller's return was paid out."""

    via: str
    amount_cents: int
    refund_id: str | None = None
    refund_status: str | None = None
    credit_id: str | None = None
    credit_created: bool = False
    error: str | None = None


class CancelBookingResponse(BaseModel):
    """Schema for cancellation response."""

    ok: bool
    booking_id: UUID
    already_cancelled: bool
    cancelled_by: str | None
    scenario: str
    status: str
    canceller_return_cents: int
    platform_fee_cents: int
    refund_status: str | None = None
    refund_amount_cents: int | None = None
    rebook_by: datetime | None = None
    refund: RefundSummary | None = None
    credits: list[CreditIssued] = Field(default_factory=list)
    platform_income_created: bool = False
    message: str


class CheckInResponse(BaseModel):
    """Schema for check-in response."""

    ok: bool
    booking_id: UUID
    actor: str
    already_checked_in: bool
    borrower_checked_in: bool
    owner_checked_in: bool
    borrower_checked_in_at: datetime | None = None
    owner_checked_in_at: datetime | None = None


class CompleteBookingResponse(BaseModel):
    """Schema for completion response.

    ``auto_settle`` carries the settlement service outcome verbatim, or
    ``None`` while the other party has not confirmed yet.
    """

    ok: bool
    booking_id: UUID
    actor: str
    actor_confirmed: bool
    borrower_confirmed_complete: bool
    owner_confirmed_complete: bool
    completed: bool
    settled: bool
    settled_at: datetime | None = None
    settlement_outcome: str | None = None
    owner_deposit_choice: str | None = None
    auto_settle: dict[str, Any] | None = None
    message: str


class DepositChoiceResponse(BaseModel):
    """Schema for deposit choice response."""

    ok: bool
    booking_id: UUID
    owner_deposit_choice: str


class ForceMajeureResponse(BaseModel):
    """Schema for force majeure response."""

    ok: bool
    booking_id: UUID
    borrower_agreed_at: datetime | None = None
    owner_agreed_at: datetime | None = None
    both_agreed: bool
    settled: bool
    settlement: dict[str, Any] | None = None
