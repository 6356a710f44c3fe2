"""Online/offline flag of the device and the reconciliation it triggers."""

import logging
from typing import TYPE_CHECKING, Optional

from .errors import PartnerClientError

if TYPE_CHECKING:
    from .cache import LocalBookingCache
    from .queue import OfflineActionQueue, SyncReport

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """
    Tracks whether the device can reach the booking API.

    Going online syncs the offline queue and then refreshes the booking cache.
    Going offline only flips the flag.
    """

    def __init__(self, online: bool = False):
        self._online = online
        self._queue: Optional["OfflineActionQueue"] = None
        self._cache: Optional["LocalBookingCache"] = None

    def attach(self, queue: "OfflineActionQueue", cache: "LocalBookingCache") -> None:
        self._queue = queue
        self._cache = cache

    @property
    def online(self) -> bool:
        return self._online

    async def mark_online(self) -> Optional["SyncReport"]:
        """
        Record that connectivity is back.

        Returns:
            The report of the triggered sync, or None when already online
        """
        if self._online:
            return None

        self._online = True
        logger.info("Connectivity restored")

        report = None
        try:
            if self._queue is not None:
                report = await self._queue.sync()
            if self._cache is not None:
                await self._cache.refresh()
        except PartnerClientError as e:
            logger.warning("Reconciliation after reconnect incomplete", extra={"error": str(e)})
        return report

    def mark_offline(self) -> None:
        if not self._online:
            return
        self._online = False
        logger.info("Connectivity lost")
