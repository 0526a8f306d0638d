"""Payment and credit database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.booking import utcnow

if TYPE_CHECKING:
    from app.models.booking import Booking


class PaymentType(str, Enum):
    """Kinds of money movement recorded against a booking."""

    BORROWER_BOOKING = "borrower_booking"
    BORROWER_PAYMENT = "borrower_payment"
    BORROWER_CREDIT = "borrower_credit"  # borrower paid with a ledger credit
    OWNER_DEPOSIT = "owner_deposit"
    PLATFORM_INCOME_CANCEL_FEE = "platform_income_cancel_fee"
    OWNER_PAYOUT = "owner_payout"
    BORROWER_COMPENSATION = "borrower_compensation"


BORROWER_PAYMENT_TYPES = (
    PaymentType.BORROWER_BOOKING.value,
    PaymentType.BORROWER_PAYMENT.value,
    PaymentType.BORROWER_CREDIT.value,
)

# Statuses that mean the money was actually taken.
PAID_STATUSES = ("paid", "succeeded", "captured", "payout_due")


class Payment(Base):
    """Money movement attempt for a booking."""

    __tablename__ = "payments"
    __table_args__ = (
        Index(
            "uq_payments_cancel_fee_per_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("payment_type = 'platform_income_cancel_fee'"),
            sqlite_where=text("payment_type = 'platform_income_cancel_fee'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))  # null for platform rows

    payment_type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False
    )  # pending, succeeded, paid, captured, payout_due, failed

    # Amount
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # in cents
    currency: Mapped[str] = mapped_column(String(3), default="CAD", nullable=False)

    # Gateway
    gateway: Mapped[str | None] = mapped_column(String(30))  # stripe, credit
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(100))  # payment intent

    # Refund
    refund_id: Mapped[str | None] = mapped_column(String(100))
    refund_status: Mapped[str | None] = mapped_column(String(20))  # pending, succeeded, failed
    refunded_amount_cents: Mapped[int | None] = mapped_column(Integer)
    refund_idempotency_key: Mapped[str | None] = mapped_column(String(64))
    refund_error: Mapped[str | None] = mapped_column(Text)

    # Payout
    payout_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payout_method: Mapped[str | None] = mapped_column(String(30))
    payout_reference: Mapped[str | None] = mapped_column(String(120))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")


class Credit(Base):
    """Compensating balance owed to a user for one booking."""

    __tablename__ = "credits"
    __table_args__ = (
        Index(
            "uq_credits_available_per_booking",
            "user_id",
            "booking_id",
            "credit_type",
            unique=True,
            postgresql_where=text("status = 'available'"),
            sqlite_where=text("status = 'available'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True
    )
    credit_type: Mapped[str] = mapped_column(
        String(40), nullable=False
    )  # rebook_credit, cancel_refund_credit
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # in cents
    currency: Mapped[str] = mapped_column(String(3), default="CAD", nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="available", nullable=False
    )  # available, used
    reason: Mapped[str | None] = mapped_column(Text)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Redemption pointer
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    used_on_booking_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), index=True)
    restored_from_booking_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
