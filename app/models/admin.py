"""Audit trail database model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.booking import utcnow

if TYPE_CHECKING:
    from app.models.booking import Booking


class BookingAuditLog(Base):
    """Append-only record of why a booking changed.

    Rows are never updated or deleted; see ``app.core.immutability``.
    """

    __tablename__ = "booking_audit_log"
    __table_args__ = (
        # One cancellation completion marker per booking
        Index(
            "uq_audit_booking_cancelled",
            "booking_id",
            unique=True,
            postgresql_where=text("action = 'booking_cancelled'"),
            sqlite_where=text("action = 'booking_cancelled'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True
    )

    # Actor
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)  # borrower, owner, admin, system
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))  # null for system

    # Action details
    action: Mapped[str] = mapped_column(String(60), nullable=False, index=True)
    note: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB(), "postgresql"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="audit_entries")
