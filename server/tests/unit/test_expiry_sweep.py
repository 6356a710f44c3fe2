"""Unit tests for the payment-hold expiry sweep."""

from datetime import timedelta

import pytest

from booking_api.services.booking_repository import BookingRepository
from booking_api.services.expiry_service import EXPIRY_REASON, ExpiryService


@pytest.mark.asyncio
async def test_sweep_cancels_lapsed_hold(test_session, test_session_factory, make_booking, emitter, event_sink, now):
    """A pending booking with an unpaid fee is cancelled one minute after its hold ends."""
    booking = await make_booking(expires_at=now + timedelta(minutes=20))
    service = ExpiryService(test_session_factory, emitter=emitter)

    result = await service.sweep(now + timedelta(minutes=21))

    assert result.cancelled_count == 1
    assert result.failed_count == 0
    stored = await BookingRepository(test_session).reload(booking.id)
    assert stored.status == "CANCELLED"
    assert stored.cancellation_reason == EXPIRY_REASON
    assert stored.cancelled_at == now + timedelta(minutes=21)
    assert stored.expires_at is None
    assert event_sink.types() == ["booking.cancelled"]


@pytest.mark.asyncio
async def test_second_sweep_cancels_nothing(test_session_factory, make_booking, emitter, now):
    await make_booking(expires_at=now - timedelta(minutes=1))
    await make_booking(expires_at=now - timedelta(minutes=5))
    service = ExpiryService(test_session_factory, emitter=emitter)

    first = await service.sweep(now)
    second = await service.sweep(now)

    assert first.cancelled_count == 2
    assert second.cancelled_count == 0
    assert second.examined_count == 0


@pytest.mark.asyncio
async def test_sweep_leaves_live_and_paid_bookings(test_session, test_session_factory, make_booking, emitter, now):
    live = await make_booking(expires_at=now + timedelta(minutes=5))
    fee_paid = await make_booking(expires_at=now - timedelta(minutes=5), booking_fee_status="PAID")
    confirmed = await make_booking(status="CONFIRMED", booking_fee_status="PAID", expires_at=None)
    no_deadline = await make_booking(expires_at=None)

    result = await ExpiryService(test_session_factory, emitter=emitter).sweep(now)

    assert result.cancelled_count == 0
    repository = BookingRepository(test_session)
    for booking, status in ((live, "PENDING"), (fee_paid, "PENDING"), (confirmed, "CONFIRMED"), (no_deadline, "PENDING")):
        assert (await repository.reload(booking.id)).status == status


@pytest.mark.asyncio
async def test_sweep_respects_batch_size(test_session_factory, make_booking, emitter, now):
    for minutes in range(1, 4):
        await make_booking(expires_at=now - timedelta(minutes=minutes))
    service = ExpiryService(test_session_factory, emitter=emitter, batch_size=2)

    assert (await service.sweep(now)).cancelled_count == 2
    assert (await service.sweep(now)).cancelled_count == 1


@pytest.mark.asyncio
async def test_failed_item_does_not_stop_batch(test_session, test_session_factory, make_booking, emitter, now, monkeypatch):
    """One booking failing leaves the rest of the batch to proceed."""
    bad = await make_booking(expires_at=now - timedelta(minutes=10))
    good = await make_booking(expires_at=now - timedelta(minutes=5))
    service = ExpiryService(test_session_factory, emitter=emitter)

    original = service.expire_one

    async def flaky_expire(booking_id, at):
        if booking_id == bad.id:
            raise RuntimeError("disk on fire")
        return await original(booking_id, at)

    monkeypatch.setattr(service, "expire_one", flaky_expire)

    result = await service.sweep(now)

    assert result.cancelled_count == 1
    assert result.failed_count == 1
    repository = BookingRepository(test_session)
    assert (await repository.reload(bad.id)).status == "PENDING"
    assert (await repository.reload(good.id)).status == "CANCELLED"


@pytest.mark.asyncio
async def test_expire_one_loses_to_confirmed_booking(test_session, test_session_factory, make_booking, emitter, event_sink, now):
    """A booking confirmed after it was selected is left alone."""
    booking = await make_booking(expires_at=now - timedelta(minutes=1))
    service = ExpiryService(test_session_factory, emitter=emitter)
    candidates = await service.find_expired(now)
    assert candidates == [booking.id]

    booking.status = "CONFIRMED"
    booking.booking_fee_status = "PAID"
    booking.expires_at = None
    await test_session.commit()

    assert await service.expire_one(booking.id, now) is False
    assert (await BookingRepository(test_session).reload(booking.id)).status == "CONFIRMED"
    assert event_sink.events == []
