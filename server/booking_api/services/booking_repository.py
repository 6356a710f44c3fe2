"""Persistence access for bookings."""

import logging
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.exceptions import NotFoundError, TransientIOError
from ..models.booking import Booking
from ..domain.status import BookingStatus

logger = logging.getLogger(__name__)


class BookingRepository:
    """
    Booking reads and writes on top of one session.

    Every status change goes through :meth:`update`, which only touches the
    row while it still has the expected status. The repository never commits;
    the calling service owns the transaction boundary.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, booking_id: UUID) -> Booking | None:
        """Get booking by ID."""
        stmt = select(Booking).where(Booking.id == booking_id)
        result = await self._execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_id_or_raise(self, booking_id: UUID) -> Booking:
        """Get booking by ID or raise NotFoundError."""
        booking = await self.find_by_id(booking_id)
        if not booking:
            logger.warning(
                "Booking not found",
                extra={"booking_id": str(booking_id)}
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=str(booking_id)
            )
        return booking

    async def reload(self, booking_id: UUID) -> Booking | None:
        """Re-read a booking, discarding whatever the session has cached."""
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(stmt)
        return result.scalar_one_or_none()

    async def find_many(
        self,
        *criteria: Any,
        limit: Optional[int] = None,
        order_by: Sequence[Any] = (),
    ) -> list[Booking]:
        """Find bookings matching all criteria."""
        stmt = select(Booking).where(*criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._execute(stmt)
        return list(result.scalars())

    async def insert(self, booking: Booking) -> Booking:
        """Add a new booking and flush it so defaults are populated."""
        self.db.add(booking)
        try:
            await self.db.flush()
        except OperationalError as e:
            raise TransientIOError("Could not store booking") from e
        return booking

    async def update(
        self,
        booking_id: UUID,
        expected_status: BookingStatus,
        patch: dict[str, Any],
        *extra_criteria: Any,
    ) -> bool:
        """
        Conditionally update one booking.

        The row is only written while its status still equals
        ``expected_status`` (and every extra criterion holds) at write time.

        Returns:
            True if the row was updated, False if another writer got there first
        """
        values = dict(patch)
        values.setdefault("updated_at", utcnow())

        stmt = (
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == BookingStatus(expected_status).value,
                *extra_criteria,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._execute(stmt)

        if result.rowcount == 0:
            logger.info(
                "Conditional booking update lost to a concurrent writer",
                extra={
                    "booking_id": str(booking_id),
                    "expected_status": BookingStatus(expected_status).value,
                }
            )
            return False
        return True

    async def _execute(self, stmt):
        try:
            return await self.db.execute(stmt)
        except OperationalError as e:
            raise TransientIOError("The booking store is temporarily unavailable") from e
