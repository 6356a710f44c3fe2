"""Concurrency tests for payment confirmation racing the expiry sweep."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from booking_api.core.database import Base
from booking_api.core.exceptions import InvalidTransitionError
from booking_api.models import Booking, Hotel, Room, User
from booking_api.services.booking_repository import BookingRepository
from booking_api.services.booking_service import BookingService
from booking_api.services.expiry_service import EXPIRY_REASON, ExpiryService


@pytest.mark.asyncio
async def test_expiry_between_read_and_write_wins(
    test_session, test_session_factory, make_booking, emitter, event_sink, now
):
    """The sweeper cancels after confirmation read the booking; confirmation must lose."""
    booking = await make_booking(expires_at=now - timedelta(minutes=1))
    expiry = ExpiryService(test_session_factory, emitter=emitter)
    service = BookingService(test_session, emitter=emitter)

    original_find = service.repository.find_by_id_or_raise

    async def find_then_expire(booking_id):
        found = await original_find(booking_id)
        assert await expiry.expire_one(booking_id, now) is True
        return found

    service.repository.find_by_id_or_raise = find_then_expire

    with pytest.raises(InvalidTransitionError) as exc_info:
        await service.confirm_payment(booking.id, Decimal("1000.00"), "bkash", "TX-1")

    assert exc_info.value.problem_details["current_status"] == "CANCELLED"
    stored = await BookingRepository(test_session).reload(booking.id)
    assert stored.status == "CANCELLED"
    assert stored.cancellation_reason == EXPIRY_REASON
    assert stored.payment_status == "PENDING"
    assert event_sink.types() == ["booking.cancelled"]


@pytest.mark.asyncio
async def test_confirmation_before_sweep_wins(
    test_session, test_session_factory, make_booking, emitter, event_sink, now
):
    booking = await make_booking(expires_at=now - timedelta(minutes=1))
    expiry = ExpiryService(test_session_factory, emitter=emitter)
    candidates = await expiry.find_expired(now)

    confirmed = await BookingService(test_session, emitter=emitter).confirm_payment(
        booking.id, Decimal("200.00"), "nagad", "TX-2"
    )
    assert confirmed.status == "CONFIRMED"
    assert confirmed.payment_status == "PAY_AT_HOTEL"

    assert candidates == [booking.id]
    assert await expiry.expire_one(booking.id, now) is False
    assert (await BookingRepository(test_session).reload(booking.id)).status == "CONFIRMED"
    assert event_sink.types() == ["booking.confirmed"]


@pytest.mark.asyncio
async def test_concurrent_confirmations_and_sweep_resolve_each_booking_once(tmp_path, emitter, now):
    """Run real concurrent writers against a file database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/race.db", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async with factory() as db:
        hotel = Hotel(name="Hill View", city="Sylhet")
        guest = User(name="Nusrat Jahan", email="nusrat@example.com")
        db.add_all([hotel, guest])
        await db.flush()
        room = Room(hotel_id=hotel.id, name="12", type="SINGLE", base_price=Decimal("800.00"))
        db.add(room)
        await db.flush()

        bookings = [
            Booking(
                user_id=guest.id,
                hotel_id=hotel.id,
                room_id=room.id,
                check_in=now.date() + timedelta(days=10),
                check_out=now.date() + timedelta(days=11),
                guest_name="Nusrat Jahan",
                guest_phone="+8801800000000",
                guest_count=1,
                status="PENDING",
                payment_status="PENDING",
                booking_fee_status="PENDING",
                total_amount=Decimal("800.00"),
                booking_fee=Decimal("160.00"),
                expires_at=now - timedelta(minutes=1),
                created_at=now - timedelta(minutes=21),
                updated_at=now - timedelta(minutes=21),
            )
            for _ in range(8)
        ]
        db.add_all(bookings)
        await db.commit()
    booking_ids = [booking.id for booking in bookings]

    async def confirm(booking_id):
        async with factory() as db:
            return await BookingService(db, emitter=emitter).confirm_payment(
                booking_id, Decimal("800.00"), "bkash", f"TX-{booking_id}"
            )

    try:
        results = await asyncio.gather(
            ExpiryService(factory, emitter=emitter).sweep(now),
            *(confirm(booking_id) for booking_id in booking_ids),
            return_exceptions=True,
        )
        sweep_result, confirmations = results[0], results[1:]
        assert not isinstance(sweep_result, BaseException)
        assert sweep_result.failed_count == 0

        async with factory() as db:
            repository = BookingRepository(db)
            stored = [await repository.reload(booking_id) for booking_id in booking_ids]
    finally:
        await engine.dispose()

    cancelled = 0
    for booking, outcome in zip(stored, confirmations):
        assert booking.status in ("CONFIRMED", "CANCELLED")
        if booking.status == "CONFIRMED":
            assert not isinstance(outcome, BaseException)
            assert booking.payment_status == "PAID"
            assert booking.cancelled_at is None
        else:
            cancelled += 1
            assert isinstance(outcome, InvalidTransitionError)
            assert booking.payment_status == "PENDING"
            assert booking.cancellation_reason == EXPIRY_REASON
        assert booking.expires_at is None

    assert sweep_result.cancelled_count == cancelled
