"""Append-only enforcement for the booking audit trail using SQLAlchemy events."""

import logging
from datetime import UTC, datetime

from sqlalchemy import event

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_registered = False


class ImmutabilityViolationError(ValidationError):
    """Raised when attempting to modify an append-only record."""

    def __init__(self, model_name: str, operation: str, record_id: str):
        self.model_name = model_name
        self.operation = operation
        self.record_id = record_id
        super().__init__(
            f"Immutability violation: Cannot {operation} {model_name} record {record_id}. "
            "Audit entries are immutable after creation."
        )


def _log_immutability_violation(model_name: str, operation: str, record_id: str) -> None:
    """Log immutability violation for audit purposes."""
    logger.error(
        f"IMMUTABILITY_VIOLATION: Attempted to {operation} {model_name} "
        f"record_id={record_id} at {datetime.now(UTC).isoformat()}"
    )


def register_immutability_enforcement() -> None:
    """Register SQLAlchemy event listeners for append-only models.

    Must be called after models are imported but before session use.
    Safe to call more than once.
    """
    global _registered
    if _registered:
        return

    from app.models.admin import BookingAuditLog

    @event.listens_for(BookingAuditLog, "before_update")
    def prevent_audit_update(mapper, connection, target):
        """Prevent updates to BookingAuditLog (append-only)."""
        _log_immutability_violation("BookingAuditLog", "UPDATE", str(target.id))
        raise ImmutabilityViolationError("BookingAuditLog", "UPDATE", str(target.id))

    @event.listens_for(BookingAuditLog, "before_delete")
    def prevent_audit_delete(mapper, connection, target):
        """Prevent deletion of BookingAuditLog (append-only)."""
        _log_immutability_violation("BookingAuditLog", "DELETE", str(target.id))
        raise ImmutabilityViolationError("BookingAuditLog", "DELETE", str(target.id))

    _registered = True
    logger.info("Immutability enforcement registered for booking audit log")
