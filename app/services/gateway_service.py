"""Payment gateway service.

Resolves the configured refund gateway. No business logic here - only
gateway coordination.
"""

import logging

from app.config import settings
from app.gateways.base import PaymentGateway
from app.gateways.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


def _is_production() -> bool:
    """Check if running in production environment."""
    return settings.environment == "production"


def _assert_production_for_real_gateway(secret_key: str) -> None:
    """Block live gateway keys in non-production environments.

    Raises:
        RuntimeError: If a live key is configured outside production
    """
    if not _is_production() and not secret_key.startswith("sk_test_"):
        raise RuntimeError(
            f"Cannot execute live Stripe operations in {settings.environment} environment. "
            "Set ENVIRONMENT=production or use a test key."
        )


class GatewayService:
    """Service for managing payment gateway operations."""

    def __init__(self):
        self._gateway: PaymentGateway | None = None
        self._gateway_key: str | None = None

    def get_refund_gateway(self) -> PaymentGateway | None:
        """Gateway to refund through, or None when no credential is configured."""
        secret_key = settings.stripe_secret_key
        if not secret_key:
            return None
        # Environment safety: block live keys in non-production
        _assert_production_for_real_gateway(secret_key)
        if self._gateway is None or self._gateway_key != secret_key:
            self._gateway = StripeGateway(secret_key)
            self._gateway_key = secret_key
        return self._gateway


# Singleton instance
gateway_service = GatewayService()
