"""Background worker that expires unpaid pending bookings."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import utcnow
from ..core.database import async_session_factory
from ..services.expiry_service import ExpiryService
from ..services.idempotency_service import IdempotencyService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class ExpiryWorker(BaseWorker):
    """
    In-process fallback for the cron endpoint.

    Each iteration runs one expiry sweep and drops idempotency records whose
    replay window has passed.
    """

    def __init__(
        self,
        interval_seconds: float = 300,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        super().__init__(name="BookingExpiry", interval_seconds=interval_seconds)
        self.session_factory = session_factory or async_session_factory
        self.expiry_service = ExpiryService(self.session_factory)

    async def process(self) -> None:
        """Run one sweep."""
        now = utcnow()
        result = await self.expiry_service.sweep(now)

        if result.cancelled_count or result.failed_count:
            logger.info(
                f"Expired {result.cancelled_count} bookings",
                extra={
                    "cancelled_count": result.cancelled_count,
                    "failed_count": result.failed_count,
                    "skipped_count": result.skipped_count,
                    "timestamp": now.isoformat(),
                    "worker": self.name,
                }
            )

        async with self.session_factory() as db:
            await IdempotencyService(db).cleanup_expired_records()
