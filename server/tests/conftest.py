"""Test configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("EXPIRY_WORKER_ENABLED", "false")

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from booking_api.core.config import settings
from booking_api.core.database import Base, get_db
from booking_api.core.dependencies import Actor
from booking_api.models import *  # noqa: F403 - Import all models
from booking_api.models import Booking, Hotel, Room, User
from booking_api.services.event_service import EventEmitter
from booking_api.services.expiry_service import ExpiryService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed clock used by most scenarios: ten days before the seeded check-in
NOW = datetime(2026, 3, 1, 9, 0, 0)
CHECK_IN = date(2026, 3, 11)
CHECK_OUT = date(2026, 3, 13)


class RecordingSink:
    """Event sink that keeps everything it is given."""

    def __init__(self):
        self.events = []

    async def publish(self, event_type: str, body: str) -> None:
        self.events.append((event_type, body))

    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def event_sink():
    return RecordingSink()


@pytest.fixture
def emitter(event_sink):
    """Event emitter that records instead of publishing."""
    return EventEmitter(event_sink)


@pytest_asyncio.fixture(scope="function")
async def seeded(test_session):
    """A hotel with one room, a guest account and the actors used by the tests."""
    hotel = Hotel(name="Sea Pearl", city="Cox's Bazar")
    test_session.add(hotel)
    await test_session.flush()

    room = Room(hotel_id=hotel.id, name="201", type="DOUBLE", base_price=Decimal("500.00"))
    guest = User(name="Rahim Uddin", email="rahim@example.com")
    other = User(name="Karim Ahmed", email="karim@example.com")
    test_session.add_all([room, guest, other])
    await test_session.commit()

    return {
        "hotel": hotel,
        "room": room,
        "guest": guest,
        "other": other,
        "guest_actor": Actor(user_id=guest.id),
        "other_actor": Actor(user_id=other.id),
        "staff_actor": Actor(user_id=uuid4(), roles=frozenset({"HOTEL_STAFF"}), username="frontdesk"),
        "admin_actor": Actor(user_id=uuid4(), roles=frozenset({"ADMIN"}), username="admin"),
    }


@pytest_asyncio.fixture(scope="function")
async def make_booking(test_session, seeded):
    """Factory that stores a booking directly, bypassing the service rules."""

    async def _make(**overrides) -> Booking:
        values = {
            "user_id": seeded["guest"].id,
            "hotel_id": seeded["hotel"].id,
            "room_id": seeded["room"].id,
            "check_in": CHECK_IN,
            "check_out": CHECK_OUT,
            "guest_name": "Rahim Uddin",
            "guest_phone": "+8801700000000",
            "guest_count": 2,
            "status": "PENDING",
            "payment_status": "PENDING",
            "booking_fee_status": "PENDING",
            "total_amount": Decimal("1000.00"),
            "booking_fee": Decimal("200.00"),
            "expires_at": NOW + timedelta(minutes=20),
            "created_at": NOW,
            "updated_at": NOW,
        }
        values.update(overrides)
        booking = Booking(**values)
        test_session.add(booking)
        await test_session.commit()
        return booking

    return _make


def make_token(user_id, roles=(), secret=None) -> str:
    """Signed bearer token for the given user."""
    payload = {"sub": str(user_id), "roles": list(roles), "username": f"user-{str(user_id)[:8]}"}
    return jwt.encode(payload, secret or settings.bearer_token_secret, algorithm="HS256")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def token():
    return make_token


@pytest.fixture
def auth_headers():
    """Builds request headers carrying a bearer token for a user."""

    def _headers(user_id, roles=(), **extra) -> dict:
        headers = {"Authorization": f"Bearer {make_token(user_id, roles)}"}
        headers.update(extra)
        return headers

    return _headers


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, test_session_factory, emitter):
    """Create a test FastAPI application."""
    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError

    from booking_api.core.exceptions import (
        ProblemDetailsException,
        generic_exception_handler,
        problem_details_handler,
        validation_exception_handler,
    )
    from booking_api.routers import booking_router, cron_router, health_router, metrics_router, wallet_router
    from booking_api.routers.cron import get_expiry_service

    # Create a simplified test app without lifespan
    app = FastAPI(
        title="Hotel Booking API (Test)",
        description="Test version of the API",
        version="1.0.0-test",
    )

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "hotel-booking-api", "version": "1.0.0", "environment": "test"}

    # Register API routers
    app.include_router(health_router)
    app.include_router(booking_router)
    app.include_router(wallet_router)
    app.include_router(cron_router)
    app.include_router(metrics_router)

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_expiry_service] = lambda: ExpiryService(test_session_factory, emitter=emitter)

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
