"""Test configuration and fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret")

import asyncio  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402
from uuid import UUID  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from bus_booking import models  # noqa: E402,F401
from bus_booking.core.config import settings  # noqa: E402
from bus_booking.core.database import Base, build_engine, get_db  # noqa: E402
from bus_booking.core.dependencies import (  # noqa: E402
    SlidingWindowRateLimiter,
    get_clock,
    get_hold_rate_limiter,
    get_payment_gateway,
    get_schedule_locks,
    get_seat_events,
)
from bus_booking.schemas.booking import PassengerDetails  # noqa: E402
from bus_booking.schemas.common import Money  # noqa: E402
from bus_booking.schemas.route import CreateRouteRequest  # noqa: E402
from bus_booking.schemas.schedule import CreateScheduleRequest, SeatLayout  # noqa: E402
from bus_booking.services.payment_gateway import MockPaymentGateway  # noqa: E402
from bus_booking.services.route_service import RouteService  # noqa: E402
from bus_booking.services.schedule_service import ScheduleService  # noqa: E402
from bus_booking.services.seat_events import SeatEventBroadcaster  # noqa: E402
from bus_booking.services.seat_reservation import ScheduleLockRegistry, SeatReservationCoordinator  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

START_TIME = datetime(2030, 6, 1, 8, 0, 0)


class FrozenClock:
    """Naive UTC clock that only moves when told to."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class RecordingSubscriber:
    """Stand-in for a WebSocket that records what it was sent."""

    def __init__(self, fail: bool = False, stall: bool = False):
        self.fail = fail
        self.stall = stall
        self.stalled_sends = 0
        self.messages: list[dict] = []

    async def send_json(self, data) -> None:
        if self.stall:
            # A peer that never drains its socket
            self.stalled_sends += 1
            await asyncio.Event().wait()
        if self.fail:
            raise ConnectionError("socket closed")
        self.messages.append(data)

    def of_type(self, event_type: str) -> list[dict]:
        return [message for message in self.messages if message["type"] == event_type]


@dataclass
class ScheduleHandle:
    """Plain identifiers of a created schedule, safe to use across rollbacks."""

    id: UUID
    route_id: UUID
    seat_ids: list[UUID]
    seat_numbers: dict[UUID, str] = field(default_factory=dict)
    prices: dict[UUID, int] = field(default_factory=dict)

    def seat(self, number: str) -> UUID:
        return next(seat_id for seat_id, label in self.seat_numbers.items() if label == number)


async def create_schedule_handle(
    session: AsyncSession,
    now: datetime,
    rows: int = 2,
    columns: int = 2,
    premium_rows: int = 0,
    departs_in: timedelta = timedelta(days=1),
    operator_name: str = "Test Coaches",
) -> ScheduleHandle:
    """Create a route and one schedule, returning plain identifiers."""
    route_service = RouteService(session)
    route = await route_service.get_route_by_endpoints("Kampala", "Gulu", operator_name)
    if route is None:
        route = await route_service.create_route(CreateRouteRequest(
            origin="Kampala",
            destination="Gulu",
            operator_name=operator_name,
            distance_km=340,
            duration_minutes=330,
        ))

    departure_time = now + departs_in
    schedule = await ScheduleService(session).create_schedule(CreateScheduleRequest(
        route_id=str(route.id),
        bus_number="UBA-123",
        departure_time=departure_time,
        arrival_time=departure_time + timedelta(hours=6),
        price=Money(amount=2500, currency="USD"),
        premium_price=Money(amount=4000, currency="USD"),
        layout=SeatLayout(rows=rows, columns=columns, premium_rows=premium_rows),
    ))

    return ScheduleHandle(
        id=schedule.id,
        route_id=route.id,
        seat_ids=[seat.id for seat in schedule.seats],
        seat_numbers={seat.id: seat.seat_number for seat in schedule.seats},
        prices={seat.id: seat.price_amount for seat in schedule.seats},
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = build_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def events():
    return SeatEventBroadcaster(send_timeout_seconds=0.2)


@pytest.fixture
def locks():
    return ScheduleLockRegistry(timeout_seconds=2)


@pytest.fixture
def gateway():
    return MockPaymentGateway()


@pytest.fixture
def rate_limiter():
    return SlidingWindowRateLimiter(limit=1000)


@pytest.fixture
def subscriber_factory():
    return RecordingSubscriber


@pytest.fixture
def coordinator(test_session, events, locks, clock):
    return SeatReservationCoordinator(
        test_session,
        events=events,
        locks=locks,
        clock=clock,
        hold_window_seconds=300,
        max_seats_per_hold=4,
    )


@pytest_asyncio.fixture(scope="function")
async def schedule(test_session, clock):
    """A 2x2 schedule departing one day after the frozen clock."""
    return await create_schedule_handle(test_session, clock())


@pytest.fixture
def schedule_factory(test_session, clock):
    """Create further schedules on the shared route."""

    async def factory(**kwargs) -> ScheduleHandle:
        return await create_schedule_handle(test_session, clock(), **kwargs)

    return factory


@pytest.fixture
def passenger():
    return PassengerDetails(name="Ada Okello", email="ada@example.com", phone="+256 700 000000")


@pytest.fixture
def admin_token():
    return jwt.encode(
        {"sub": "admin-1", "username": "admin", "roles": ["admin"]},
        settings.bearer_token_secret,
        algorithm="HS256",
    )


@pytest.fixture
def user_token():
    return jwt.encode({"sub": "user-1", "roles": []}, settings.bearer_token_secret, algorithm="HS256")


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, clock, events, locks, gateway, rate_limiter):
    """The real application wired to the test database and in-memory collaborators."""
    from bus_booking.main import create_app

    app = create_app()

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_seat_events] = lambda: events
    app.dependency_overrides[get_schedule_locks] = lambda: locks
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_hold_rate_limiter] = lambda: rate_limiter

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def schedule_builder():
    """The schedule helper itself, for tests that manage their own sessions."""
    return create_schedule_handle


@pytest.fixture
def clock_factory():
    return FrozenClock
