"""Idempotency keys for outbound money movements."""

import hashlib
import json
from datetime import datetime
from typing import Any
from uuid import UUID


def generate_idempotency_key(
    operation: str,
    entity_id: UUID | str,
    params: dict[str, Any] | None = None,
) -> str:
    """Generate a deterministic idempotency key.

    Args:
        operation: Operation name (e.g., "cancel_refund")
        entity_id: Primary entity ID
        params: Additional parameters to include in key

    Returns:
        SHA256 hash of operation + entity + params
    """
    key_data = {
        "operation": operation,
        "entity_id": str(entity_id),
        "params": params or {},
    }
    key_str = json.dumps(key_data, sort_keys=True)
    return hashlib.sha256(key_str.encode()).hexdigest()


def cancel_refund_key(booking_id: UUID | str, party: str, cancelled_at: datetime) -> str:
    """Key for the canceller's refund, stable across retries of one cancellation.

    ``cancelled_at`` is the timestamp persisted on the booking, so every
    re-drive of the same cancellation derives the same key.
    """
    return generate_idempotency_key(
        "cancel_refund",
        booking_id,
        {"party": party, "cancelled_at": cancelled_at.isoformat()},
    )
