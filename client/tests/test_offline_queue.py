"""Tests for the offline action queue and its reconciliation with the server."""

import asyncio
from datetime import timedelta

import httpx
import pytest

from partner_client.queue import OfflineActionQueue
from partner_client.store import ActionKind, LocalStore, utcnow


@pytest.mark.asyncio
async def test_queue_action_is_local_only(store, queue, monitor, server, make_snapshot):
    """Queuing while offline writes the action and shows the optimistic status."""
    booking = server.add(make_snapshot())
    await store.upsert_booking(booking)
    monitor.mark_offline()

    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    assert server.requests == []
    pending = await queue.pending()
    assert [p.id for p in pending] == [action.id]
    assert pending[0].synced is False
    cached = await store.get_booking(booking["id"])
    assert cached.status == "CONFIRMED"
    assert cached.display_status == "CHECKED_IN"

    report = await queue.sync()

    assert report.offline is True
    assert server.requests == []
    assert len(await queue.pending()) == 1


@pytest.mark.asyncio
async def test_actions_sync_in_queue_order(store, queue, server, make_snapshot):
    """A check-out queued after a check-in is submitted after it."""
    booking = server.add(make_snapshot())
    await store.upsert_booking(booking)
    check_in = await queue.queue_action(booking["id"], "CHECK_IN")
    check_out = await queue.queue_action(booking["id"], "CHECK_OUT")

    report = await queue.sync()

    assert report.synced == [check_in.id, check_out.id]
    assert report.conflicts == []
    assert server.action_requests == [
        f"POST /bookings/{booking['id']}/check-in",
        f"POST /bookings/{booking['id']}/check-out",
    ]
    assert await queue.pending() == []
    cached = await store.get_booking(booking["id"])
    assert cached.status == "CHECKED_OUT"
    assert cached.pending_status is None


@pytest.mark.asyncio
async def test_action_id_is_sent_as_idempotency_key(store, queue, server, make_snapshot):
    booking = server.add(make_snapshot())
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    await queue.sync()

    posted = [request for request in server.requests if request.method == "POST"]
    assert len(posted) == 1
    assert posted[0].headers["Idempotency-Key"] == action.id
    assert posted[0].headers["Authorization"] == "Bearer staff-token"


@pytest.mark.asyncio
async def test_terminal_rejection_discards_action(store, queue, server, conflicts, make_snapshot):
    """The server says the booking was cancelled: the action goes and staff are told why."""
    booking = make_snapshot()
    server.add(dict(booking, status="CANCELLED"))
    await store.upsert_booking(booking)
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    report = await queue.sync()

    assert report.synced == []
    assert len(report.conflicts) == 1
    conflict = report.conflicts[0]
    assert conflict.action_id == action.id
    assert conflict.code == "INVALID_TRANSITION"
    assert conflict.server_status == "CANCELLED"
    assert "already CANCELLED" in conflict.message
    assert conflicts == [conflict]

    assert await store.get_action(action.id) is None
    cached = await store.get_booking(booking["id"])
    assert cached.pending_status is None
    assert cached.display_status == "CONFIRMED"


@pytest.mark.asyncio
async def test_cached_terminal_status_discards_without_request(store, queue, server, conflicts, make_snapshot):
    booking = server.add(make_snapshot(status="CHECKED_OUT"))
    await store.upsert_booking(booking)
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    report = await queue.sync()

    assert server.action_requests == []
    assert [c.action_id for c in report.conflicts] == [action.id]
    assert report.conflicts[0].server_status == "CHECKED_OUT"
    assert await queue.pending() == []


@pytest.mark.asyncio
async def test_lost_acknowledgement_seen_by_refresh_counts_as_synced(
    store, queue, cache, server, conflicts, make_snapshot
):
    """The server applied the check-out but the reply was lost; a refresh then shows CHECKED_OUT."""
    booking = server.add(make_snapshot(status="CHECKED_IN"))
    await store.upsert_booking(booking)
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_OUT)
    server.lost_replies = 1

    first = await queue.sync()

    assert first.retried == [action.id]
    assert server.bookings[booking["id"]]["status"] == "CHECKED_OUT"

    await cache.refresh()
    second = await queue.sync()

    assert second.synced == [action.id]
    assert second.conflicts == []
    assert conflicts == []
    assert len(server.action_requests) == 1
    assert await queue.pending() == []
    cached = await store.get_booking(booking["id"])
    assert cached.status == "CHECKED_OUT"
    assert cached.pending_status is None


@pytest.mark.asyncio
async def test_lost_acknowledgements_for_both_steps_count_as_synced(
    store, queue, cache, server, conflicts, make_snapshot
):
    """A refresh showing CHECKED_OUT also settles the queued check-in that led there."""
    booking = server.add(make_snapshot(status="CHECKED_OUT"))
    await store.upsert_booking(dict(booking, status="CONFIRMED"))
    check_in = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    check_out = await queue.queue_action(booking["id"], ActionKind.CHECK_OUT)

    await cache.refresh()
    report = await queue.sync()

    assert report.synced == [check_in.id, check_out.id]
    assert conflicts == []
    assert server.action_requests == []
    assert await queue.pending() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [503, 429, httpx.ReadTimeout("read timed out"), httpx.ConnectError("connection refused")],
    ids=["server-error", "rate-limited", "timeout", "unreachable"],
)
async def test_transient_failure_keeps_action(store, queue, server, conflicts, make_snapshot, failure):
    booking = server.add(make_snapshot())
    await store.upsert_booking(booking)
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    server.failures.append(failure)

    report = await queue.sync()

    assert report.retried == [action.id]
    assert report.conflicts == []
    assert conflicts == []
    stored = await store.get_action(action.id)
    assert stored.synced is False
    assert stored.in_flight is False
    assert stored.retry_count == 1
    assert stored.last_error
    assert (await store.get_booking(booking["id"])).display_status == "CHECKED_IN"

    retry = await queue.sync()

    assert retry.synced == [action.id]
    assert server.bookings[booking["id"]]["status"] == "CHECKED_IN"
    assert (await store.get_booking(booking["id"])).status == "CHECKED_IN"


@pytest.mark.asyncio
async def test_later_action_held_back_behind_failed_one(store, queue, server, make_snapshot):
    """A check-out is not sent while the check-in before it is still unsynced."""
    booking = server.add(make_snapshot())
    other = server.add(make_snapshot())
    check_in = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    check_out = await queue.queue_action(booking["id"], ActionKind.CHECK_OUT)
    other_check_in = await queue.queue_action(other["id"], ActionKind.CHECK_IN)
    server.failures.append(503)

    report = await queue.sync()

    assert report.retried == [check_in.id]
    assert report.held_back == [check_out.id]
    assert report.synced == [other_check_in.id]
    assert server.action_requests == [
        f"POST /bookings/{booking['id']}/check-in",
        f"POST /bookings/{other['id']}/check-in",
    ]

    report = await queue.sync()

    assert report.synced == [check_in.id, check_out.id]
    assert server.bookings[booking["id"]]["status"] == "CHECKED_OUT"


@pytest.mark.asyncio
async def test_concurrent_sync_is_skipped(store, queue, server, make_snapshot):
    """Only one pass runs at a time, so an action is never submitted twice."""
    booking = server.add(make_snapshot())
    await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    server.gate = asyncio.Event()

    first = asyncio.create_task(queue.sync())
    while not server.requests:
        await asyncio.sleep(0.01)

    assert queue.syncing is True
    second = await queue.sync()
    server.gate.set()
    first_report = await first

    assert second.skipped is True
    assert second.attempted == 0
    assert len(first_report.synced) == 1
    assert len(server.action_requests) == 1


@pytest.mark.asyncio
async def test_two_queues_on_one_store_never_submit_twice(store, api, monitor, server, make_snapshot):
    """The in-flight claim stops a second queue instance from sending the same action."""
    booking = server.add(make_snapshot())
    first_queue = OfflineActionQueue(store, api, monitor)
    second_queue = OfflineActionQueue(store, api, monitor)
    await first_queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    server.gate = asyncio.Event()

    first = asyncio.create_task(first_queue.sync())
    while not server.requests:
        await asyncio.sleep(0.01)

    second = await second_queue.sync()
    server.gate.set()
    await first

    assert second.synced == []
    assert len(second.held_back) == 1
    assert len(server.action_requests) == 1


@pytest.mark.asyncio
async def test_cancel_action(store, queue, server, make_snapshot):
    booking = server.add(make_snapshot())
    await store.upsert_booking(booking)
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    assert await queue.cancel_action(action.id) is True
    assert await queue.cancel_action(action.id) is False
    assert await queue.cancel_action("no-such-action") is False

    assert await queue.pending() == []
    assert (await store.get_booking(booking["id"])).display_status == "CONFIRMED"
    await queue.sync()
    assert server.action_requests == []


@pytest.mark.asyncio
async def test_synced_or_in_flight_action_cannot_be_cancelled(store, queue, server, make_snapshot):
    booking = server.add(make_snapshot())
    synced = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    await queue.sync()
    in_flight = await queue.queue_action(booking["id"], ActionKind.CHECK_OUT)
    assert await store.claim_action(in_flight.id) is True

    assert await queue.cancel_action(synced.id) is False
    assert await queue.cancel_action(in_flight.id) is False


@pytest.mark.asyncio
async def test_recover_releases_stale_in_flight_actions(store, queue, server, make_snapshot):
    """An action claimed by a process that died is picked up again."""
    booking = server.add(make_snapshot())
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    await store.claim_action(action.id)

    blocked = await queue.sync()
    assert blocked.held_back == [action.id]

    assert await queue.recover() == 1
    report = await queue.sync()

    assert report.synced == [action.id]


@pytest.mark.asyncio
async def test_replayed_acknowledgement_is_accepted(store, queue, server, make_snapshot):
    """A retry after a lost response gets the stored answer, not a conflict."""
    booking = server.add(make_snapshot())
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    await queue.api.submit(ActionKind.CHECK_IN, booking["id"], idempotency_key=action.id)

    report = await queue.sync()

    assert report.synced == [action.id]
    assert report.conflicts == []


@pytest.mark.asyncio
async def test_queue_survives_restart(local_db_url, store, make_snapshot):
    """Queued actions are on disk before queue_action returns."""
    booking_id = make_snapshot()["id"]
    await store.add_action(booking_id, ActionKind.CHECK_IN)
    await store.add_action(booking_id, ActionKind.CHECK_OUT)
    await store.close()

    reopened = LocalStore(local_db_url)
    await reopened.init()
    try:
        actions = await reopened.unsynced_actions()
    finally:
        await reopened.close()

    assert [a.kind for a in actions] == [ActionKind.CHECK_IN, ActionKind.CHECK_OUT]
    assert all(a.booking_id == booking_id for a in actions)


@pytest.mark.asyncio
async def test_synced_actions_are_pruned_after_retention(store, queue, server, make_snapshot):
    booking = server.add(make_snapshot())
    action = await queue.queue_action(booking["id"], ActionKind.CHECK_IN)
    await queue.sync()
    assert (await store.get_action(action.id)).synced is True

    report = await queue.sync(now=utcnow() + timedelta(hours=25))

    assert report.pruned == 1
    assert await store.get_action(action.id) is None


@pytest.mark.asyncio
async def test_failing_conflict_listener_does_not_break_sync(store, api, monitor, server, make_snapshot):
    def explode(conflict):
        raise RuntimeError("listener down")

    booking = server.add(make_snapshot(status="CANCELLED"))
    queue = OfflineActionQueue(store, api, monitor, on_conflict=explode)
    await queue.queue_action(booking["id"], ActionKind.CHECK_IN)

    report = await queue.sync()

    assert len(report.conflicts) == 1
    assert await queue.pending() == []
