"""Wiring of the partner sync library from ClientSettings."""

import logging
from typing import Optional

import httpx

from .api import BookingApiClient
from .cache import LocalBookingCache
from .config import ClientSettings
from .connectivity import ConnectivityMonitor
from .queue import ConflictListener, OfflineActionQueue
from .store import LocalStore
from .worker import SyncWorker

logger = logging.getLogger(__name__)


class PartnerApp:
    """Everything a partner dashboard needs, built from one settings object."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        on_conflict: Optional[ConflictListener] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        online: bool = False,
    ):
        self.settings = settings or ClientSettings()
        self.store = LocalStore(self.settings.local_db_url)
        self.api = BookingApiClient(
            self.settings.api_base_url,
            self.settings.api_token,
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
        )
        self.monitor = ConnectivityMonitor(online=online)
        self.queue = OfflineActionQueue(
            self.store,
            self.api,
            self.monitor,
            on_conflict=on_conflict,
            synced_retention_hours=self.settings.synced_retention_hours,
        )
        self.cache = LocalBookingCache(
            self.store,
            self.api,
            self.monitor,
            hotel_id=self.settings.hotel_id,
            max_age_seconds=self.settings.cache_max_age_seconds,
        )
        self.monitor.attach(self.queue, self.cache)
        self.worker = SyncWorker(self.queue, self.cache, interval_seconds=self.settings.sync_interval_seconds)

    async def start(self, run_worker: bool = True) -> None:
        """Open the local store, recover from a crash and start the fallback loop."""
        await self.store.init()
        await self.queue.recover()
        if run_worker:
            await self.worker.start()
        logger.info("Partner app started", extra={"hotel_id": self.settings.hotel_id})

    async def stop(self) -> None:
        await self.worker.stop()
        await self.api.close()
        await self.store.close()
        logger.info("Partner app stopped")
