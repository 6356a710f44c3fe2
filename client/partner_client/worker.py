"""Periodic fallback sync for the partner device."""

import logging
from typing import Optional

from booking_api.workers.base import BaseWorker

from .cache import LocalBookingCache
from .errors import PartnerClientError
from .queue import OfflineActionQueue

logger = logging.getLogger(__name__)


class SyncWorker(BaseWorker):
    """
    Runs a sync pass, then a cache refresh, every interval while online.

    Connectivity events remain the main trigger; this loop only catches
    whatever they missed.
    """

    def __init__(
        self,
        queue: OfflineActionQueue,
        cache: Optional[LocalBookingCache] = None,
        interval_seconds: float = 60.0,
    ):
        super().__init__(name="partner_sync", interval_seconds=interval_seconds)
        self.queue = queue
        self.cache = cache

    async def process(self) -> None:
        """One reconciliation round; does nothing while offline."""
        if not self.queue.monitor.online:
            return

        try:
            report = await self.queue.sync()
            if report.skipped:
                return
            if self.cache is not None:
                await self.cache.refresh()
        except PartnerClientError as e:
            # Server down or gone offline mid-round; the next round retries
            logger.warning(f"Worker {self.name} round failed", extra={"error": str(e)})
