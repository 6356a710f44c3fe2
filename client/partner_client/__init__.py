"""Offline-first sync library for the hotel partner dashboard."""

from .api import BookingApiClient
from .app import PartnerApp
from .cache import LocalBookingCache
from .config import ClientSettings
from .connectivity import ConnectivityMonitor
from .errors import OfflineError, PartnerClientError, TerminalRejection, TransientSyncError
from .queue import OfflineActionQueue, SyncConflict, SyncReport
from .store import ActionKind, CachedBooking, LocalStore, PendingAction
from .worker import SyncWorker

__all__ = [
    "ActionKind",
    "BookingApiClient",
    "CachedBooking",
    "ClientSettings",
    "ConnectivityMonitor",
    "LocalBookingCache",
    "LocalStore",
    "OfflineActionQueue",
    "OfflineError",
    "PartnerApp",
    "PartnerClientError",
    "PendingAction",
    "SyncConflict",
    "SyncReport",
    "SyncWorker",
    "TerminalRejection",
    "TransientSyncError",
]
