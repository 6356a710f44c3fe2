"""Expiry sweep for unpaid pending bookings."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import utcnow
from ..core.config import settings
from ..core.observability import metrics_collector
from ..domain import BookingSnapshot, apply_transition
from ..domain.status import BookingFeeStatus, BookingStatus
from ..models.booking import Booking
from .booking_repository import BookingRepository
from .event_service import BOOKING_CANCELLED, EventEmitter, event_emitter

logger = logging.getLogger(__name__)

EXPIRY_REASON = "Payment window expired"


@dataclass(frozen=True)
class SweepResult:
    """Counts reported by one sweep."""

    timestamp: datetime
    cancelled_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0

    @property
    def examined_count(self) -> int:
        return self.cancelled_count + self.failed_count + self.skipped_count


def expired_criteria(now: datetime) -> tuple:
    """Row filter for bookings whose payment hold has lapsed at now."""
    return (
        Booking.status == BookingStatus.PENDING.value,
        Booking.booking_fee_status == BookingFeeStatus.PENDING.value,
        Booking.expires_at.is_not(None),
        Booking.expires_at < now,
    )


class ExpiryService:
    """
    Cancels pending bookings whose payment window has lapsed.

    Every booking is cancelled in its own session and transaction so that one
    bad row never holds back the rest of the batch. The cancelling write
    repeats the selection criteria, which makes it lose cleanly against a
    payment confirmation that landed in between.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: Optional[EventEmitter] = None,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.emitter = emitter or event_emitter
        self.batch_size = batch_size or settings.sweep_batch_size

    async def find_expired(self, now: datetime) -> list[UUID]:
        """IDs of bookings eligible for expiry at now, oldest hold first."""
        async with self.session_factory() as db:
            bookings = await BookingRepository(db).find_many(
                *expired_criteria(now),
                limit=self.batch_size,
                order_by=(Booking.expires_at,),
            )
            return [booking.id for booking in bookings]

    async def expire_one(self, booking_id: UUID, now: datetime) -> bool:
        """
        Cancel one booking if it is still an expired, unpaid hold.

        Returns:
            True if this call cancelled the booking, False if it was already resolved
        """
        snapshot = BookingSnapshot(status=BookingStatus.PENDING)
        cancelled = apply_transition(snapshot, BookingStatus.CANCELLED, at=now, reason=EXPIRY_REASON)

        async with self.session_factory() as db:
            repository = BookingRepository(db)
            try:
                updated = await repository.update(
                    booking_id,
                    BookingStatus.PENDING,
                    cancelled.as_patch(),
                    *expired_criteria(now)[1:],
                )
                if not updated:
                    await db.rollback()
                    metrics_collector.record_race_lost("expire")
                    return False
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        metrics_collector.record_booking_expired()
        metrics_collector.record_booking_cancelled("EXPIRED")
        metrics_collector.record_transition(BookingStatus.PENDING.value, BookingStatus.CANCELLED.value)
        logger.info(
            "Booking expired",
            extra={
                "booking_id": str(booking_id),
                "cancelled_at": now.isoformat(),
            }
        )

        await self.emitter.emit(
            BOOKING_CANCELLED,
            {
                "booking_id": str(booking_id),
                "status": BookingStatus.CANCELLED.value,
                "reason": EXPIRY_REASON,
                "refund_amount": 0,
            },
        )
        return True

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Expire every lapsed hold found at now.

        Per-booking failures are logged and counted; the sweep itself only
        raises when the candidate query fails.

        Args:
            now: Sweep time, defaults to the current UTC time

        Returns:
            Counts of cancelled, failed and skipped bookings
        """
        now = now or utcnow()
        started = time.perf_counter()

        candidates = await self.find_expired(now)

        cancelled = failed = skipped = 0
        for booking_id in candidates:
            try:
                if await self.expire_one(booking_id, now):
                    cancelled += 1
                else:
                    skipped += 1
            except Exception as e:
                failed += 1
                metrics_collector.record_expiry_failure()
                logger.error(
                    "Failed to expire booking",
                    exc_info=True,
                    extra={
                        "booking_id": str(booking_id),
                        "error": str(e),
                    }
                )
                continue

        metrics_collector.observe_sweep_duration(time.perf_counter() - started)

        if candidates:
            logger.info(
                "Expiry sweep completed",
                extra={
                    "cancelled_count": cancelled,
                    "failed_count": failed,
                    "skipped_count": skipped,
                    "batch_size": self.batch_size,
                    "timestamp": now.isoformat(),
                }
            )

        return SweepResult(
            timestamp=now,
            cancelled_count=cancelled,
            failed_count=failed,
            skipped_count=skipped,
        )
