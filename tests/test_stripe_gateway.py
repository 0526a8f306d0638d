"""Tests for the Stripe refund adapter."""

import threading
from types import SimpleNamespace

import pytest
import stripe

from app.gateways.stripe_gateway import StripeGateway


@pytest.fixture
def stripe_refunds(monkeypatch: pytest.MonkeyPatch):
    """Replace ``stripe.Refund.create`` and record each call."""
    calls: list[dict] = []
    monkeypatch.setattr(stripe, "api_key", None)

    def _create(**kwargs):
        calls.append({"thread": threading.get_ident(), **kwargs})
        return SimpleNamespace(id="re_123", status="succeeded")

    monkeypatch.setattr(stripe.Refund, "create", _create)
    return calls


class TestStripeGateway:
    @pytest.mark.asyncio
    async def test_refund_runs_off_event_loop(self, stripe_refunds):
        """Test the blocking SDK call happens in a worker thread."""
        gateway = StripeGateway(secret_key="sk_test_abc")

        result = await gateway.process_refund("pi_1", 11250, "Early cancellation", "key-1")

        assert result.success is True
        assert result.refund_id == "re_123"
        assert len(stripe_refunds) == 1
        assert stripe_refunds[0]["thread"] != threading.get_ident()
        assert stripe_refunds[0]["payment_intent"] == "pi_1"
        assert stripe_refunds[0]["amount"] == 11250
        assert stripe_refunds[0]["idempotency_key"] == "key-1"

    @pytest.mark.asyncio
    async def test_stripe_error_is_returned(self, monkeypatch):
        """Test SDK errors come back as a failed result."""
        monkeypatch.setattr(stripe, "api_key", None)

        def _fail(**kwargs):
            raise stripe.StripeError("card declined")

        monkeypatch.setattr(stripe.Refund, "create", _fail)
        gateway = StripeGateway(secret_key="sk_test_abc")

        result = await gateway.process_refund("pi_1", 11250, "Early cancellation", "key-1")

        assert result.success is False
        assert "card declined" in result.error_message

    @pytest.mark.asyncio
    async def test_not_configured(self, stripe_refunds):
        """Test a missing key fails without calling Stripe."""
        gateway = StripeGateway(secret_key=None)

        result = await gateway.process_refund("pi_1", 100, "r", "k")

        assert result.success is False
        assert stripe_refunds == []
