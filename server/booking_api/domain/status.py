"""Status enumerations shared by the models, schemas and the partner client."""

from enum import Enum


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    PAY_AT_HOTEL = "PAY_AT_HOTEL"


class BookingFeeStatus(str, Enum):
    """Booking fee (advance hold) status enumeration."""
    PENDING = "PENDING"
    PAID = "PAID"
