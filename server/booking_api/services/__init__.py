"""Service layer package."""

from .booking_repository import BookingRepository
from .booking_service import BookingService
from .cancellation_service import CancellationService
from .event_service import EventEmitter, event_emitter
from .expiry_service import ExpiryService, SweepResult
from .idempotency_service import IdempotencyService
from .wallet_service import WalletService

__all__ = [
    "BookingRepository",
    "BookingService",
    "CancellationService",
    "EventEmitter",
    "event_emitter",
    "ExpiryService",
    "SweepResult",
    "IdempotencyService",
    "WalletService",
]
