"""Durable on-device store for cached bookings and queued partner actions."""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

logger = logging.getLogger(__name__)

LocalBase = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching what SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ActionKind(str, Enum):
    """Partner actions that can be queued offline."""
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"

    @property
    def target_status(self) -> str:
        """Booking status the action moves the booking to."""
        return "CHECKED_IN" if self is ActionKind.CHECK_IN else "CHECKED_OUT"


class CachedBooking(LocalBase):
    """Last server snapshot of a booking plus the optimistic status shown offline."""

    __tablename__ = "cached_bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    hotel_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    room_id: Mapped[str] = mapped_column(String(36), nullable=False)
    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_phone: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    check_in: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    synced_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    pending_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    @property
    def display_status(self) -> str:
        """Status staff should see: the optimistic one while an action is queued."""
        return self.pending_status or self.status

    def __repr__(self) -> str:
        return f"<CachedBooking(id={self.id}, status={self.status}, pending_status={self.pending_status})>"


class PendingAction(LocalBase):
    """A check-in or check-out recorded on the device and not yet acknowledged."""

    __tablename__ = "pending_actions"

    # Insertion order is submission order
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    booking_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    in_flight: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def kind(self) -> ActionKind:
        return ActionKind(self.action)

    def __repr__(self) -> str:
        return (
            f"<PendingAction(id={self.id}, booking_id={self.booking_id}, action={self.action}, "
            f"synced={self.synced}, in_flight={self.in_flight}, retry_count={self.retry_count})>"
        )


def booking_row(snapshot: Mapping[str, Any], synced_at: datetime) -> dict[str, Any]:
    """Column values for a cached booking built from an API booking body."""
    total = snapshot.get("total_amount")
    return {
        "id": str(snapshot["id"]),
        "hotel_id": str(snapshot["hotel_id"]),
        "room_id": str(snapshot["room_id"]),
        "guest_name": snapshot["guest_name"],
        "guest_phone": snapshot.get("guest_phone") or "",
        "guest_count": snapshot.get("guest_count") or 1,
        "check_in": date.fromisoformat(str(snapshot["check_in"])),
        "check_out": date.fromisoformat(str(snapshot["check_out"])),
        "status": snapshot["status"],
        "payment_status": snapshot.get("payment_status"),
        "total_amount": Decimal(str(total)) if total is not None else None,
        "synced_at": synced_at,
    }


class LocalStore:
    """
    SQLite store behind the offline queue and the booking cache.

    Every method runs in its own short session and commits before returning,
    so whatever a method reports is already on disk.
    """

    def __init__(self, url: str):
        self.url = url
        self.engine = create_async_engine(url, future=True)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def init(self) -> None:
        """Create the tables if they do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(LocalBase.metadata.create_all)

    async def close(self) -> None:
        """Release the database connections."""
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # Pending actions

    async def add_action(self, booking_id: str, kind: ActionKind) -> PendingAction:
        """Persist a new unsynced action."""
        action = PendingAction(
            id=str(uuid.uuid4()),
            booking_id=str(booking_id),
            action=ActionKind(kind).value,
            created_at=utcnow(),
        )
        async with self.session() as session:
            session.add(action)
        return action

    async def get_action(self, action_id: str) -> Optional[PendingAction]:
        async with self.session() as session:
            result = await session.execute(select(PendingAction).where(PendingAction.id == action_id))
            return result.scalar_one_or_none()

    async def unsynced_actions(self, booking_id: Optional[str] = None) -> list[PendingAction]:
        """Unsynced actions, oldest first."""
        stmt = select(PendingAction).where(PendingAction.synced.is_(False)).order_by(PendingAction.seq)
        if booking_id is not None:
            stmt = stmt.where(PendingAction.booking_id == str(booking_id))
        async with self.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars())

    async def claim_action(self, action_id: str) -> bool:
        """Mark a local action in flight; False if it is gone, synced or already claimed."""
        async with self.session() as session:
            result = await session.execute(
                update(PendingAction)
                .where(
                    PendingAction.id == action_id,
                    PendingAction.synced.is_(False),
                    PendingAction.in_flight.is_(False),
                )
                .values(in_flight=True)
            )
            return result.rowcount > 0

    async def release_action(self, action_id: str) -> None:
        await self._update_action(action_id, in_flight=False)

    async def mark_synced(self, action_id: str, at: Optional[datetime] = None) -> None:
        await self._update_action(action_id, synced=True, synced_at=at or utcnow(), in_flight=False, last_error=None)

    async def mark_failed(self, action_id: str, error: str) -> None:
        """Release an action after a transient failure and count the attempt."""
        async with self.session() as session:
            await session.execute(
                update(PendingAction)
                .where(PendingAction.id == action_id)
                .values(
                    in_flight=False,
                    retry_count=PendingAction.retry_count + 1,
                    last_error=error[:1000],
                )
            )

    async def delete_action(self, action_id: str) -> bool:
        async with self.session() as session:
            result = await session.execute(delete(PendingAction).where(PendingAction.id == action_id))
            return result.rowcount > 0

    async def delete_local_action(self, action_id: str) -> bool:
        """Delete an action only while it is still purely local."""
        async with self.session() as session:
            result = await session.execute(
                delete(PendingAction).where(
                    PendingAction.id == action_id,
                    PendingAction.synced.is_(False),
                    PendingAction.in_flight.is_(False),
                )
            )
            return result.rowcount > 0

    async def clear_in_flight(self) -> int:
        """Release every action left in flight by a crash."""
        async with self.session() as session:
            result = await session.execute(
                update(PendingAction).where(PendingAction.in_flight.is_(True)).values(in_flight=False)
            )
            return result.rowcount

    async def prune_synced(self, before: datetime) -> int:
        """Delete synced actions acknowledged before the given time."""
        async with self.session() as session:
            result = await session.execute(
                delete(PendingAction).where(
                    PendingAction.synced.is_(True),
                    PendingAction.synced_at < before,
                )
            )
            return result.rowcount

    async def _update_action(self, action_id: str, **values: Any) -> None:
        async with self.session() as session:
            await session.execute(update(PendingAction).where(PendingAction.id == action_id).values(**values))

    # Cached bookings

    async def get_booking(self, booking_id: str) -> Optional[CachedBooking]:
        async with self.session() as session:
            return await session.get(CachedBooking, str(booking_id))

    async def list_bookings(self) -> list[CachedBooking]:
        async with self.session() as session:
            result = await session.execute(select(CachedBooking).order_by(CachedBooking.check_in, CachedBooking.id))
            return list(result.scalars())

    async def replace_bookings(
        self,
        snapshots: list[Mapping[str, Any]],
        synced_at: datetime,
        pending_statuses: Mapping[str, str],
    ) -> None:
        """
        Overwrite the whole cache with a fresh server listing.

        Args:
            snapshots: Booking bodies returned by the API
            synced_at: Time of the refresh
            pending_statuses: Optimistic status to keep, per booking with unsynced actions
        """
        async with self.session() as session:
            await session.execute(delete(CachedBooking))
            for snapshot in snapshots:
                row = booking_row(snapshot, synced_at)
                row["pending_status"] = pending_statuses.get(row["id"])
                session.add(CachedBooking(**row))

    async def upsert_booking(
        self,
        snapshot: Mapping[str, Any],
        synced_at: Optional[datetime] = None,
        pending_status: Optional[str] = None,
    ) -> CachedBooking:
        """Store one server snapshot, replacing any cached copy."""
        row = booking_row(snapshot, synced_at or utcnow())
        row["pending_status"] = pending_status
        async with self.session() as session:
            return await session.merge(CachedBooking(**row))

    async def set_pending_status(self, booking_id: str, pending_status: Optional[str]) -> None:
        async with self.session() as session:
            await session.execute(
                update(CachedBooking)
                .where(CachedBooking.id == str(booking_id))
                .values(pending_status=pending_status)
            )

    async def last_synced_at(self) -> Optional[datetime]:
        """Time of the oldest snapshot still in the cache."""
        async with self.session() as session:
            result = await session.execute(select(func.min(CachedBooking.synced_at)))
            return result.scalar_one_or_none()
