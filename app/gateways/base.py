"""Base payment gateway interface.

Adapters only talk to the gateway. Deciding who gets refunded, and falling
back to credit, lives in ``app.services.refund_service``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class GatewayType(str, Enum):
    """Supported payment gateways."""

    STRIPE = "stripe"


@dataclass
class RefundResult:
    """Result of a refund operation."""

    success: bool
    refund_id: str | None = None
    status: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def gateway_type(self) -> GatewayType:
        """Return the gateway type."""
        pass

    @abstractmethod
    async def process_refund(
        self,
        transaction_id: str,
        amount: int,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Process a refund.

        Args:
            transaction_id: Original charge reference (payment intent)
            amount: Refund amount in cents
            reason: Refund reason
            idempotency_key: Retries with the same key must not refund twice

        Returns:
            RefundResult with refund details. Failures are returned, never raised.
        """
        pass
