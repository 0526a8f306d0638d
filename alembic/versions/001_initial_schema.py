"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-16

Creates the booking lifecycle tables:
- Bookings
- Payments and credits
- Booking audit log
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _ts(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), **kwargs)


def _flag(name: str) -> sa.Column:
    return sa.Column(name, sa.Boolean, nullable=False, server_default=sa.false())


def upgrade() -> None:
    """Create all database tables."""

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("borrower_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        _ts("scheduled_start_at"),
        sa.Column("duration_minutes", sa.Integer, nullable=False, server_default="30"),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending_payment"),
        # Payment flags
        _flag("borrower_paid"),
        _ts("borrower_paid_at"),
        _flag("owner_deposit_paid"),
        _ts("owner_deposit_paid_at"),
        # Check-in
        _flag("borrower_checked_in"),
        _ts("borrower_checked_in_at"),
        _flag("owner_checked_in"),
        _ts("owner_checked_in_at"),
        # Completion
        _flag("borrower_confirmed_complete"),
        _ts("borrower_confirmed_complete_at"),
        _flag("owner_confirmed_complete"),
        _ts("owner_confirmed_complete_at"),
        sa.Column("owner_deposit_choice", sa.String(10)),
        _flag("completed"),
        _ts("completed_at"),
        sa.Column("owner_payout_amount_cents", sa.Integer),
        _flag("owner_payout_done"),
        _ts("owner_payout_at"),
        # Cancellation
        _flag("cancelled"),
        sa.Column("cancelled_by", sa.String(20)),
        _ts("cancelled_at"),
        sa.Column("cancel_scenario", sa.String(50)),
        sa.Column("cancel_canceller_return_cents", sa.Integer),
        sa.Column("cancel_platform_fee_cents", sa.Integer),
        _flag("needs_rebooking"),
        _ts("rebook_by"),
        sa.Column("refund_status", sa.String(30)),
        sa.Column("refund_amount_cents", sa.Integer),
        # Review / disputes
        _flag("needs_review"),
        sa.Column("review_reason", sa.String(60)),
        sa.Column("tag_reason", sa.Text),
        sa.Column("no_show_claimed_by", sa.String(20)),
        _ts("no_show_claimed_at"),
        _flag("treat_as_owner_no_show"),
        _flag("treat_as_borrower_no_show"),
        _flag("bike_invalid"),
        sa.Column("bike_invalid_reason", sa.Text),
        _ts("bike_invalid_at"),
        _ts("force_majeure_borrower_agreed_at"),
        _ts("force_majeure_owner_agreed_at"),
        # Settlement
        _flag("settled"),
        _ts("settled_at"),
        sa.Column("settlement_outcome", sa.String(60)),
        _ts("created_at", nullable=False, server_default=sa.func.now()),
        _ts("updated_at", nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_bookings_acceptance_candidates",
        "bookings",
        ["borrower_paid", "owner_deposit_paid", "cancelled", "created_at"],
    )

    # ==================== PAYMENTS ====================
    op.create_table(
        "payments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True)),
        sa.Column("payment_type", sa.String(40), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="CAD"),
        sa.Column("gateway", sa.String(30)),
        sa.Column("gateway_transaction_id", sa.String(100)),
        sa.Column("refund_id", sa.String(100)),
        sa.Column("refund_status", sa.String(20)),
        sa.Column("refunded_amount_cents", sa.Integer),
        sa.Column("refund_idempotency_key", sa.String(64)),
        sa.Column("refund_error", sa.Text),
        _ts("payout_paid_at"),
        sa.Column("payout_method", sa.String(30)),
        sa.Column("payout_reference", sa.String(120)),
        _ts("created_at", nullable=False, server_default=sa.func.now()),
        _ts("updated_at", nullable=False, server_default=sa.func.now()),
    )
    # At most one cancellation fee income row per booking
    op.create_index(
        "uq_payments_cancel_fee_per_booking",
        "payments",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("payment_type = 'platform_income_cancel_fee'"),
    )

    # ==================== CREDITS ====================
    op.create_table(
        "credits",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("credit_type", sa.String(40), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="CAD"),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column("reason", sa.Text),
        _ts("expires_at"),
        _ts("used_at"),
        sa.Column("used_on_booking_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("restored_from_booking_id", postgresql.UUID(as_uuid=True)),
        _ts("created_at", nullable=False, server_default=sa.func.now()),
    )
    # One live credit per (user, booking, type) makes issuance idempotent
    op.create_index(
        "uq_credits_available_per_booking",
        "credits",
        ["user_id", "booking_id", "credit_type"],
        unique=True,
        postgresql_where=sa.text("status = 'available'"),
    )

    # ==================== AUDIT ====================
    op.create_table(
        "booking_audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("actor_role", sa.String(20), nullable=False),
        sa.Column("actor_user_id", postgresql.UUID(as_uuid=True)),
        sa.Column("action", sa.String(60), nullable=False, index=True),
        sa.Column("note", sa.Text),
        sa.Column("details", postgresql.JSONB),
        _ts("created_at", nullable=False, server_default=sa.func.now(), index=True),
    )
    # One completion marker per cancelled booking
    op.create_index(
        "uq_audit_booking_cancelled",
        "booking_audit_log",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("action = 'booking_cancelled'"),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_index("uq_audit_booking_cancelled", table_name="booking_audit_log")
    op.drop_table("booking_audit_log")
    op.drop_index("uq_credits_available_per_booking", table_name="credits")
    op.drop_table("credits")
    op.drop_index("uq_payments_cancel_fee_per_booking", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_bookings_acceptance_candidates", table_name="bookings")
    op.drop_table("bookings")
