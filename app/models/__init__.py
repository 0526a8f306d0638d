"""Database models."""

from app.models.admin import BookingAuditLog
from app.models.booking import Booking
from app.models.payment import Credit, Payment, PaymentType

__all__ = [
    # Booking
    "Booking",
    # Payment
    "Payment",
    "PaymentType",
    "Credit",
    # Admin
    "BookingAuditLog",
]
