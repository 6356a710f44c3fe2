"""Models module exporting all database models."""

from .booking import Booking, BookingFeeStatus, BookingStatus, PaymentStatus
from .hotel import Hotel, Room
from .idempotency import IdempotencyRecord
from .user import User
from .wallet import Wallet, WalletTransaction, WalletTransactionReason, WalletTransactionType

__all__ = [
    # Core entities
    "User",
    "Hotel",
    "Room",

    # Booking entities
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "BookingFeeStatus",

    # Wallet entities
    "Wallet",
    "WalletTransaction",
    "WalletTransactionType",
    "WalletTransactionReason",

    # Idempotency entity
    "IdempotencyRecord",
]
