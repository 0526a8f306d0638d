"""Tests for credit issuance and refund routing."""

import pytest
from sqlalchemy import select

from app.config import settings
from app.models.payment import Credit, Payment
from app.repositories.booking_repository import booking_repository
from app.services.credit_service import CANCEL_REFUND_CREDIT, REBOOK_CREDIT, credit_service
from app.services.refund_service import VIA_CREDIT, VIA_CREDIT_FALLBACK, VIA_GATEWAY, refund_service
from tests.conftest import NOW


async def _credits(db, user_id) -> list[Credit]:
    result = await db.execute(
        select(Credit).where(Credit.user_id == user_id).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class TestCreditService:
    @pytest.mark.asyncio
    async def test_ensure_credit_is_idempotent(self, db, make_booking):
        """Test issuing the same credit twice leaves one available credit."""
        booking = await make_booking()

        first = await credit_service.ensure_credit(
            db, booking.borrower_id, booking.id, REBOOK_CREDIT, 15000, "test", now=NOW
        )
        second = await credit_service.ensure_credit(
            db, booking.borrower_id, booking.id, REBOOK_CREDIT, 15000, "test", now=NOW
        )

        assert first.created is True
        assert second.created is False
        assert second.credit_id == first.credit_id
        credits = await _credits(db, booking.borrower_id)
        assert len(credits) == 1
        assert credits[0].currency == settings.credit_currency

    @pytest.mark.asyncio
    async def test_different_credit_types_coexist(self, db, make_booking):
        """Test a rebook credit and a refund credit for the same booking are separate."""
        booking = await make_booking()

        await credit_service.ensure_credit(db, booking.owner_id, booking.id, REBOOK_CREDIT, 15000, "a", now=NOW)
        await credit_service.ensure_credit(
            db, booking.owner_id, booking.id, CANCEL_REFUND_CREDIT, 11250, "b", now=NOW
        )

        assert len(await _credits(db, booking.owner_id)) == 2

    @pytest.mark.asyncio
    async def test_compensate_restores_used_credit(self, db, make_booking, make_used_credit):
        """Test a credit payer gets the spent credit back instead of a new one."""
        booking = await make_booking(borrower_payment_type="borrower_credit")
        used = await make_used_credit(booking.borrower_id, booking)

        result = await credit_service.compensate(
            db, booking.borrower_id, booking.id, paid_with_credit=True, amount=15000, reason="r", now=NOW
        )
        again = await credit_service.compensate(
            db, booking.borrower_id, booking.id, paid_with_credit=True, amount=15000, reason="r", now=NOW
        )

        assert result.restored == 1
        assert again.restored == 0
        assert again.created is False
        credits = await _credits(db, booking.borrower_id)
        assert len(credits) == 1
        assert credits[0].id == used.id
        assert credits[0].status == "available"
        assert credits[0].used_on_booking_id is None
        assert credits[0].restored_from_booking_id == booking.id

    @pytest.mark.asyncio
    async def test_compensate_credit_payer_without_used_credit(self, db, make_booking):
        """Test a credit payer with nothing to restore gets a fresh rebook credit."""
        booking = await make_booking(borrower_payment_type="borrower_credit")

        result = await credit_service.compensate(
            db, booking.borrower_id, booking.id, paid_with_credit=True, amount=15000, reason="r", now=NOW
        )

        assert result.created is True
        assert result.restored == 0


class TestRefundService:
    @pytest.mark.asyncio
    async def test_gateway_refund(self, db, make_booking, fake_gateway):
        """Test a card payer is refunded through the gateway with the stable key."""
        booking = await make_booking()

        outcome = await refund_service.refund_or_credit(
            db, booking, "borrower", 11250, idempotency_key="key-1", reason="r", now=NOW
        )

        assert outcome.via == VIA_GATEWAY
        assert outcome.refund_id == "re_1"
        assert fake_gateway.calls[0]["amount"] == 11250
        assert fake_gateway.calls[0]["idempotency_key"] == "key-1"
        payment = await booking_repository.find_party_payment(db, booking, "borrower")
        assert payment.refund_id == "re_1"
        assert payment.refund_status == "succeeded"
        assert payment.refund_idempotency_key == "key-1"
        refreshed = await booking_repository.get(db, booking.id)
        assert refreshed.refund_status == "refunded_partial"
        assert refreshed.refund_amount_cents == 11250

    @pytest.mark.asyncio
    async def test_recorded_refund_is_not_repeated(self, db, make_booking, fake_gateway):
        """Test a second call reports the stored refund without calling the gateway."""
        booking = await make_booking()
        await refund_service.refund_or_credit(db, booking, "owner", 11250, "key-1", "r", now=NOW)

        again = await refund_service.refund_or_credit(db, booking, "owner", 11250, "key-1", "r", now=NOW)

        assert again.via == VIA_GATEWAY
        assert again.refund_id == "re_1"
        assert len(fake_gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_pending_intent_reuses_original_key(self, db, make_booking, fake_gateway):
        """Test an interrupted refund is re-sent with the key stored before the first call."""
        booking = await make_booking()
        payment = await booking_repository.find_party_payment(db, booking, "borrower")
        await booking_repository.save_payment(
            db, payment, {"refund_status": "pending", "refund_idempotency_key": "original-key"}
        )

        await refund_service.refund_or_credit(db, booking, "borrower", 11250, "new-key", "r", now=NOW)

        assert fake_gateway.calls[0]["idempotency_key"] == "original-key"

    @pytest.mark.asyncio
    async def test_gateway_failure_falls_back_to_credit(self, db, make_booking, fake_gateway):
        """Test a failed card refund becomes a credit and is never retried on the card."""
        booking = await make_booking()
        fake_gateway.fail_with = "card_declined"

        outcome = await refund_service.refund_or_credit(db, booking, "borrower", 11250, "k", "r", now=NOW)
        again = await refund_service.refund_or_credit(db, booking, "borrower", 11250, "k", "r", now=NOW)

        assert outcome.via == VIA_CREDIT_FALLBACK
        assert outcome.error == "card_declined"
        assert outcome.credit_created is True
        assert again.via == VIA_CREDIT_FALLBACK
        assert again.credit_created is False
        assert len(fake_gateway.calls) == 1
        credits = await _credits(db, booking.borrower_id)
        assert [(c.credit_type, c.amount) for c in credits] == [(CANCEL_REFUND_CREDIT, 11250)]
        refreshed = await booking_repository.get(db, booking.id)
        assert refreshed.refund_status == "credited_partial"

    @pytest.mark.asyncio
    async def test_no_gateway_configured_uses_credit(self, db, make_booking):
        """Test the refund becomes a credit when no gateway credential is set."""
        booking = await make_booking()

        outcome = await refund_service.refund_or_credit(db, booking, "owner", 11250, "k", "r", now=NOW)

        assert outcome.via == VIA_CREDIT
        assert outcome.credit_created is True

    @pytest.mark.asyncio
    async def test_credit_payment_is_never_sent_to_gateway(self, db, make_booking, fake_gateway):
        """Test a borrower who paid with credit is refunded as credit."""
        booking = await make_booking(borrower_payment_type="borrower_credit")

        outcome = await refund_service.refund_or_credit(db, booking, "borrower", 11250, "k", "r", now=NOW)

        assert outcome.via == VIA_CREDIT
        assert fake_gateway.calls == []

    @pytest.mark.asyncio
    async def test_prefer_credit(self, db, make_booking, fake_gateway):
        """Test the canceller can take credit instead of a card refund."""
        booking = await make_booking()

        outcome = await refund_service.refund_or_credit(
            db, booking, "borrower", 11250, "k", "r", prefer_credit=True, now=NOW
        )

        assert outcome.via == VIA_CREDIT
        assert fake_gateway.calls == []
        result = await db.execute(select(Payment).where(Payment.refund_status.is_not(None)))
        assert result.scalars().first() is None
