"""Fixtures for the partner client: a throwaway local store and a fake booking API."""

import re
import uuid
from datetime import date, timedelta

import httpx
import pytest
import pytest_asyncio

from partner_client.api import BookingApiClient
from partner_client.cache import LocalBookingCache
from partner_client.connectivity import ConnectivityMonitor
from partner_client.queue import OfflineActionQueue
from partner_client.store import LocalStore

HOTEL_ID = "6f1c2d2e-5b7a-4a51-9a43-1d2b3c4d5e6f"

ACTION_PATH = re.compile(r"^/bookings/(?P<booking_id>[^/]+)/(?P<action>check-in|check-out)$")
MOVES = {
    "check-in": ("CONFIRMED", "CHECKED_IN"),
    "check-out": ("CHECKED_IN", "CHECKED_OUT"),
}


def snapshot(status="CONFIRMED", check_in=None, check_out=None, **overrides) -> dict:
    """Booking body as the API returns it."""
    check_in = check_in or date.today()
    body = {
        "id": str(uuid.uuid4()),
        "hotel_id": HOTEL_ID,
        "room_id": str(uuid.uuid4()),
        "guest_name": "Tahmina Akter",
        "guest_phone": "+8801911111111",
        "guest_count": 2,
        "check_in": check_in.isoformat(),
        "check_out": (check_out or check_in + timedelta(days=2)).isoformat(),
        "status": status,
        "payment_status": "PAID",
        "total_amount": 4500.0,
    }
    body.update(overrides)
    return body


class FakeBookingApi:
    """
    In-process stand-in for the booking API behind an httpx.MockTransport.

    Applies check-in/check-out with the server's transition rules, replays
    responses for a repeated Idempotency-Key and can be scripted to fail.
    """

    def __init__(self):
        self.bookings: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        # Consumed one per action request: a status code or an exception to raise
        self.failures: list = []
        self.gate = None
        # Action requests that are applied but whose reply never arrives
        self.lost_replies = 0
        self._replies: dict[str, tuple[int, dict]] = {}

    def add(self, body: dict) -> dict:
        self.bookings[body["id"]] = dict(body)
        return body

    @property
    def action_requests(self) -> list[str]:
        return [
            f"{request.method} {request.url.path}"
            for request in self.requests
            if request.method == "POST"
        ]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/v1/health/ping":
            return httpx.Response(200, json={"status": "ok"})

        if request.method == "GET" and path == "/bookings":
            hotel_id = request.url.params.get("hotel_id")
            items = [body for body in self.bookings.values() if body["hotel_id"] == hotel_id]
            return httpx.Response(200, json={"items": items, "total": len(items)})

        match = ACTION_PATH.match(path)
        if request.method == "POST" and match:
            if self.gate is not None:
                await self.gate.wait()
            if self.failures:
                failure = self.failures.pop(0)
                if isinstance(failure, Exception):
                    raise failure
                return httpx.Response(failure, json={"title": "Unavailable", "status": failure})
            response = self._apply(request, match["booking_id"], match["action"])
            if self.lost_replies:
                self.lost_replies -= 1
                raise httpx.ReadTimeout("Reply lost", request=request)
            return response

        return httpx.Response(404, json={"title": "Not Found", "status": 404, "detail": path})

    def _apply(self, request: httpx.Request, booking_id: str, action: str) -> httpx.Response:
        key = request.headers.get("Idempotency-Key")
        if key and key in self._replies:
            status_code, body = self._replies[key]
            return httpx.Response(status_code, json=body)

        booking = self.bookings.get(booking_id)
        if booking is None:
            status_code, body = 404, {"title": "Not Found", "status": 404, "code": "NOT_FOUND", "retryable": False}
        else:
            expected, target = MOVES[action]
            if booking["status"] == expected:
                booking["status"] = target
                status_code, body = 200, dict(booking)
            elif booking["status"] == target:
                status_code, body = 200, dict(booking)
            else:
                status_code, body = 409, {
                    "title": "Invalid Status Transition",
                    "status": 409,
                    "detail": f"Cannot move a booking from {booking['status']} to {target}",
                    "code": "INVALID_TRANSITION",
                    "retryable": False,
                    "current_status": booking["status"],
                    "target_status": target,
                }

        if key:
            self._replies[key] = (status_code, body)
        return httpx.Response(status_code, json=body)


@pytest.fixture
def local_db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path}/partner.db"


@pytest_asyncio.fixture
async def store(local_db_url):
    local_store = LocalStore(local_db_url)
    await local_store.init()
    yield local_store
    await local_store.close()


@pytest.fixture
def server():
    return FakeBookingApi()


@pytest_asyncio.fixture
async def api(server):
    client = BookingApiClient("http://booking.test", "staff-token", timeout=2.0, transport=server.transport())
    yield client
    await client.close()


@pytest.fixture
def monitor():
    return ConnectivityMonitor(online=True)


@pytest.fixture
def conflicts():
    return []


@pytest.fixture
def queue(store, api, monitor, conflicts):
    return OfflineActionQueue(store, api, monitor, on_conflict=conflicts.append)


@pytest.fixture
def cache(store, api, monitor, queue):
    booking_cache = LocalBookingCache(store, api, monitor, hotel_id=HOTEL_ID)
    monitor.attach(queue, booking_cache)
    return booking_cache


@pytest.fixture
def make_snapshot():
    return snapshot


@pytest.fixture
def hotel_id():
    return HOTEL_ID
