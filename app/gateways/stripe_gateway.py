"""Stripe payment gateway adapter."""

import asyncio
import logging

from app.config import settings
from app.gateways.base import GatewayType, PaymentGateway, RefundResult

logger = logging.getLogger(__name__)

# Stripe reports card refunds as pending until the network confirms them.
ACCEPTED_REFUND_STATUSES = {"succeeded", "pending"}


class StripeGateway(PaymentGateway):
    """Stripe payment gateway implementation."""

    def __init__(self, secret_key: str | None = None):
        self.secret_key = secret_key or settings.stripe_secret_key

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    async def process_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund part of a PaymentIntent."""
        if not self.secret_key:
            return RefundResult(
                success=False,
                error_message="Stripe not configured",
            )

        import stripe

        stripe.api_key = self.secret_key

        try:
            # The SDK call blocks; run it off the event loop.
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                payment_intent=transaction_id,
                amount=amount,
                reason="requested_by_customer",
                metadata={"reason": reason[:500]},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.warning(f"Stripe refund failed for {transaction_id}: {e}")
            return RefundResult(
                success=False,
                error_message=str(e),
            )

        return RefundResult(
            success=refund.status in ACCEPTED_REFUND_STATUSES,
            refund_id=refund.id,
            status=refund.status,
            error_message=None if refund.status in ACCEPTED_REFUND_STATUSES else f"Refund {refund.status}",
            raw_response={"status": refund.status, "id": refund.id},
        )
