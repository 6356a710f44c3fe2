"""Tests for connectivity-triggered reconciliation and the fallback sync loop."""

import asyncio

import pytest

from booking_api.workers.base import BaseWorker
from partner_client.errors import TransientSyncError
from partner_client.store import ActionKind
from partner_client.worker import SyncWorker


@pytest.mark.asyncio
async def test_reconnect_syncs_queue_then_refreshes_cache(store, cache, queue, monitor, server, make_snapshot):
    booking = server.add(make_snapshot())
    await store.upsert_booking(booking)
    monitor.mark_offline()
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    report = await monitor.mark_online()

    assert monitor.online is True
    assert report.synced == [action.id]
    paths = [f"{r.method} {r.url.path}" for r in server.requests]
    assert paths == [f"POST /bookings/{booking['id']}/check-in", "GET /bookings"]
    cached = await store.get_booking(booking["id"])
    assert cached.status == "CHECKED_IN"
    assert cached.pending_status is None


@pytest.mark.asyncio
async def test_mark_online_when_already_online_does_nothing(cache, monitor, server):
    assert await monitor.mark_online() is None
    assert server.requests == []


@pytest.mark.asyncio
async def test_reconnect_with_server_still_down_does_not_raise(store, cache, queue, monitor, server, make_snapshot):
    booking = server.add(make_snapshot())
    monitor.mark_offline()
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    server.failures.append(503)

    async def down(hotel_id, on_date=None):
        raise TransientSyncError("booking API unreachable")

    cache.api.list_bookings = down

    report = await monitor.mark_online()

    assert report.retried == [action.id]
    assert (await store.get_action(action.id)).retry_count == 1


@pytest.mark.asyncio
async def test_going_offline_stops_sync(queue, monitor, server, make_snapshot):
    booking = server.add(make_snapshot())
    await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    monitor.mark_offline()
    monitor.mark_offline()

    assert monitor.online is False
    assert (await queue.sync()).offline is True
    assert server.requests == []


@pytest.mark.asyncio
async def test_worker_round_does_nothing_offline(queue, cache, monitor, server, make_snapshot):
    booking = server.add(make_snapshot())
    await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    monitor.mark_offline()

    await SyncWorker(queue, cache).process()

    assert server.requests == []


@pytest.mark.asyncio
async def test_worker_round_syncs_and_refreshes(store, queue, cache, server, make_snapshot):
    booking = server.add(make_snapshot())
    await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    await SyncWorker(queue, cache).process()

    assert server.bookings[booking["id"]]["status"] == "CHECKED_IN"
    assert [b.id for b in await store.list_bookings()] == [booking["id"]]


@pytest.mark.asyncio
async def test_worker_loop_starts_and_stops(queue, cache, server, make_snapshot):
    booking = server.add(make_snapshot())
    await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    worker = SyncWorker(queue, cache, interval_seconds=0.05)

    await worker.start()
    assert worker.running is True
    for _ in range(100):
        if server.bookings[booking["id"]]["status"] == "CHECKED_IN":
            break
        await asyncio.sleep(0.01)
    await worker.stop()

    assert worker.running is False
    assert server.bookings[booking["id"]]["status"] == "CHECKED_IN"


@pytest.mark.asyncio
async def test_worker_round_survives_failed_refresh(queue, cache, server, make_snapshot, monkeypatch):
    booking = server.add(make_snapshot())
    await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    worker = SyncWorker(queue, cache)

    async def unreachable(now=None):
        raise TransientSyncError("connection refused")

    monkeypatch.setattr(cache, "refresh", unreachable)

    await worker.process()

    assert isinstance(worker, BaseWorker)
    assert worker.name == "partner_sync"
    assert server.bookings[booking["id"]]["status"] == "CHECKED_IN"
