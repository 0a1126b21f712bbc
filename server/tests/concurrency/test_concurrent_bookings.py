"""Concurrency tests for seat holds and bookings."""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from bus_booking.core.database import Base
from bus_booking.core.exceptions import SeatsUnavailableError
from bus_booking.models import BookingSeat, HoldSeat
from bus_booking.schemas.booking import PassengerDetails
from bus_booking.schemas.payment import PaymentStatus
from bus_booking.services.payment_gateway import PaymentConfirmation
from bus_booking.services.seat_events import SeatEventBroadcaster
from bus_booking.services.seat_reservation import ScheduleLockRegistry, SeatReservationCoordinator


@pytest_asyncio.fixture
async def file_sessions(tmp_path):
    """Session factory over a file database so every caller gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def shared(clock):
    """Collaborators shared by every request, as in one server process."""
    return {
        "clock": clock,
        "events": SeatEventBroadcaster(),
        "locks": ScheduleLockRegistry(timeout_seconds=30),
    }


@pytest_asyncio.fixture
async def bus(file_sessions, shared, schedule_builder):
    async with file_sessions() as session:
        return await schedule_builder(session, shared["clock"](), rows=3, columns=4)


def passenger_for(session_id: str) -> PassengerDetails:
    return PassengerDetails(name=f"Passenger {session_id}", email=f"{session_id}@example.com", phone="+256 700 000001")


def _coordinator(session, shared) -> SeatReservationCoordinator:
    return SeatReservationCoordinator(
        session,
        events=shared["events"],
        locks=shared["locks"],
        clock=shared["clock"],
        hold_window_seconds=300,
        max_seats_per_hold=4,
    )


@pytest.mark.asyncio
async def test_concurrent_holds_on_one_seat_have_one_winner(file_sessions, shared, bus):
    """Many sessions racing for the same seat: exactly one gets it."""
    seat_id = bus.seat("2A")
    num_concurrent_requests = 10

    async def attempt(caller: int):
        async with file_sessions() as session:
            try:
                hold = await _coordinator(session, shared).attempt_hold(bus.id, [seat_id], f"session-{caller}")
                return ("held", str(hold.id))
            except SeatsUnavailableError as e:
                return ("rejected", e.unavailable_seats[0]["held_by"])

    results = await asyncio.gather(*(attempt(i) for i in range(num_concurrent_requests)))

    winners = [hold_id for outcome, hold_id in results if outcome == "held"]
    losers = [held_by for outcome, held_by in results if outcome == "rejected"]

    assert len(winners) == 1
    assert len(losers) == num_concurrent_requests - 1
    assert set(losers) == {winners[0]}

    async with file_sessions() as session:
        held_rows = await session.scalar(select(func.count()).select_from(HoldSeat).where(HoldSeat.seat_id == seat_id))
    assert held_rows == 1


@pytest.mark.asyncio
async def test_overlapping_requests_never_share_a_seat(file_sessions, shared, bus):
    """Sessions asking for overlapping pairs end up with disjoint holds."""
    pairs = [
        ["1A", "1B"],
        ["1B", "1C"],
        ["1C", "1D"],
        ["1D", "2A"],
        ["2A", "2B"],
        ["2B", "2C"],
    ]

    async def attempt(caller: int, numbers: list[str]):
        async with file_sessions() as session:
            try:
                hold = await _coordinator(session, shared).attempt_hold(
                    bus.id, [bus.seat(number) for number in numbers], f"session-{caller}"
                )
                return set(hold.seat_ids)
            except SeatsUnavailableError:
                return set()

    held_sets = await asyncio.gather(*(attempt(i, numbers) for i, numbers in enumerate(pairs)))

    claimed = [seat_id for held in held_sets for seat_id in held]
    assert len(claimed) == len(set(claimed))
    assert any(held_sets)


@pytest.mark.asyncio
async def test_concurrent_commits_book_disjoint_seats(file_sessions, shared, bus):
    """Independent sessions committing at the same time each get their own seats."""
    seat_groups = {
        "session-1": [bus.seat("1A"), bus.seat("1B")],
        "session-2": [bus.seat("2A")],
        "session-3": [bus.seat("3C"), bus.seat("3D")],
    }

    for session_id, seat_ids in seat_groups.items():
        async with file_sessions() as session:
            await _coordinator(session, shared).attempt_hold(bus.id, seat_ids, session_id)

    async def commit(index: int, session_id: str):
        async with file_sessions() as session:
            booking = await _coordinator(session, shared).commit(
                bus.id,
                session_id,
                PaymentConfirmation(reference=f"pi_concurrent_{index}", status=PaymentStatus.SUCCEEDED),
                passenger_for(session_id),
            )
            return session_id, {seat.seat_id for seat in booking.seats}

    results = await asyncio.gather(*(commit(i, session_id) for i, session_id in enumerate(seat_groups)))

    for session_id, booked in results:
        assert booked == set(seat_groups[session_id])

    async with file_sessions() as session:
        booked_rows = await session.scalar(select(func.count()).select_from(BookingSeat))
        remaining_holds = await session.scalar(select(func.count()).select_from(HoldSeat))
    assert booked_rows == 5
    assert remaining_holds == 0
