"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..core.config import settings
from .base import BaseWorker
from .expiry_worker import ExpiryWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """Starts, stops and reports on the application's background workers."""

    def __init__(self, workers: Dict[str, BaseWorker] | None = None):
        self.workers: Dict[str, BaseWorker] = workers if workers is not None else self._default_workers()
        logger.info(f"Initialized {len(self.workers)} workers")

    @staticmethod
    def _default_workers() -> Dict[str, BaseWorker]:
        workers: Dict[str, BaseWorker] = {}
        if settings.expiry_worker_enabled:
            workers["booking_expiry"] = ExpiryWorker(
                interval_seconds=settings.expiry_worker_interval_seconds
            )
        return workers

    async def start_all(self) -> None:
        """Start all workers."""
        for name, worker in self.workers.items():
            await worker.start()
            logger.info(f"Started worker: {name}")

    async def stop_all(self) -> None:
        """Stop all workers."""
        names = list(self.workers)
        results = await asyncio.gather(
            *(self.workers[name].stop() for name in names),
            return_exceptions=True,
        )
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {result!s}")
        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Map worker names to whether they are running."""
        return {name: worker.running for name, worker in self.workers.items()}


# Global worker manager instance
worker_manager = WorkerManager()
