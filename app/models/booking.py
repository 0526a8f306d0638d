"""Booking database model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.admin import BookingAuditLog
    from app.models.payment import Payment


def utcnow() -> datetime:
    return datetime.now(UTC)


class Booking(Base):
    """A single motorcycle rental between a borrower and an owner.

    Lifecycle flags only ever move from False to True; the derived state
    lives in ``app.domain.booking_state``.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "ix_bookings_acceptance_candidates",
            "borrower_paid",
            "owner_deposit_paid",
            "cancelled",
            "created_at",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    borrower_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)

    # Schedule
    scheduled_start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)

    status: Mapped[str] = mapped_column(
        String(50), default="pending_payment", nullable=False
    )  # pending_payment, awaiting_acceptance, confirmed, completed, cancelled, declined_by_owner, expired_no_owner_acceptance

    # Payment flags
    borrower_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    borrower_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    owner_deposit_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    owner_deposit_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Check-in
    borrower_checked_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    borrower_checked_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    owner_checked_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    owner_checked_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Completion
    borrower_confirmed_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    borrower_confirmed_complete_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    owner_confirmed_complete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    owner_confirmed_complete_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    owner_deposit_choice: Mapped[str | None] = mapped_column(String(10))  # refund, keep
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    owner_payout_amount_cents: Mapped[int | None] = mapped_column(Integer)
    owner_payout_done: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    owner_payout_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Cancellation
    cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancelled_by: Mapped[str | None] = mapped_column(String(20))  # borrower, owner, system
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_scenario: Mapped[str | None] = mapped_column(String(50))
    cancel_canceller_return_cents: Mapped[int | None] = mapped_column(Integer)
    cancel_platform_fee_cents: Mapped[int | None] = mapped_column(Integer)
    needs_rebooking: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rebook_by: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Refund summary
    refund_status: Mapped[str | None] = mapped_column(
        String(30)
    )  # refunded_full, refunded_partial, credited_partial, forfeited
    refund_amount_cents: Mapped[int | None] = mapped_column(Integer)

    # Review / disputes
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    review_reason: Mapped[str | None] = mapped_column(String(60))
    tag_reason: Mapped[str | None] = mapped_column(Text)
    no_show_claimed_by: Mapped[str | None] = mapped_column(String(20))  # borrower, owner
    no_show_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    treat_as_owner_no_show: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    treat_as_borrower_no_show: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bike_invalid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bike_invalid_reason: Mapped[str | None] = mapped_column(Text)
    bike_invalid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    force_majeure_borrower_agreed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    force_majeure_owner_agreed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Settlement (written by the settlement service)
    settled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    settlement_outcome: Mapped[str | None] = mapped_column(String(60))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    payments: Mapped[list["Payment"]] = relationship(
        "Payment", back_populates="booking", lazy="raise"
    )
    audit_entries: Mapped[list["BookingAuditLog"]] = relationship(
        "BookingAuditLog", back_populates="booking", lazy="raise"
    )

    def party_id(self, role: str) -> uuid.UUID:
        """User id of the ``borrower`` or ``owner``."""
        return self.borrower_id if role == "borrower" else self.owner_id
