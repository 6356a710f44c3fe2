"""Read-through cache of the hotel's bookings, served locally whether or not the device is online."""

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Optional

from .api import BookingApiClient
from .errors import OfflineError
from .queue import pending_status_for
from .store import CachedBooking, LocalStore, utcnow

if TYPE_CHECKING:
    from .connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 300.0


def stays_touching(bookings: list[CachedBooking], day: date) -> list[CachedBooking]:
    """Bookings arriving or leaving on the given day."""
    return [booking for booking in bookings if booking.check_in == day or booking.check_out == day]


class LocalBookingCache:
    """
    Local copy of the bookings the front desk works with.

    Reads never touch the network. Only refresh() does, and it refuses to run
    while the device is offline.
    """

    def __init__(
        self,
        store: LocalStore,
        api: BookingApiClient,
        monitor: "ConnectivityMonitor",
        hotel_id: str,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
    ):
        self.store = store
        self.api = api
        self.monitor = monitor
        self.hotel_id = hotel_id
        self.max_age = timedelta(seconds=max_age_seconds)

    async def refresh(self, now: Optional[datetime] = None) -> list[CachedBooking]:
        """
        Replace the cache with the server's current bookings.

        Optimistic statuses survive only for bookings that still have
        unsynced actions.

        Raises:
            OfflineError: If the device is offline
            TransientSyncError: If the server could not be reached
            TerminalRejection: If the server refused the listing
        """
        if not self.monitor.online:
            raise OfflineError("refresh bookings")

        snapshots = await self.api.list_bookings(self.hotel_id)
        unsynced = await self.store.unsynced_actions()

        pending_statuses: dict[str, str] = {}
        for booking_id in {action.booking_id for action in unsynced}:
            status = pending_status_for([action for action in unsynced if action.booking_id == booking_id])
            if status is not None:
                pending_statuses[booking_id] = status

        await self.store.replace_bookings(snapshots, synced_at=now or utcnow(), pending_statuses=pending_statuses)
        logger.info(
            "Booking cache refreshed",
            extra={"hotel_id": self.hotel_id, "count": len(snapshots), "pending": len(pending_statuses)}
        )
        return await self.store.list_bookings()

    async def get_cached(self) -> list[CachedBooking]:
        return await self.store.list_bookings()

    async def get_today(self, today: Optional[date] = None) -> list[CachedBooking]:
        """Cached bookings checking in or out today, by the device's calendar."""
        return stays_touching(await self.store.list_bookings(), today or date.today())

    async def cache_age(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Age of the oldest cached snapshot, or None for an empty cache."""
        synced_at = await self.store.last_synced_at()
        if synced_at is None:
            return None
        return (now or utcnow()) - synced_at

    async def is_stale(self, now: Optional[datetime] = None) -> bool:
        age = await self.cache_age(now)
        return age is None or age > self.max_age
