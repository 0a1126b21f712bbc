"""Property-based tests for seat reservation invariants."""

import asyncio
from collections import Counter

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bus_booking.core.database import Base, build_engine
from bus_booking.core.exceptions import ProblemDetailsException
from bus_booking.models import BookingSeat, Hold, HoldSeat
from bus_booking.schemas.booking import PassengerDetails
from bus_booking.schemas.payment import PaymentStatus
from bus_booking.services.payment_gateway import PaymentConfirmation
from bus_booking.services.schedule_service import ScheduleService
from bus_booking.services.seat_events import SeatEventBroadcaster
from bus_booking.services.seat_reservation import ScheduleLockRegistry, SeatReservationCoordinator

SEATS = 6
SESSIONS = ["s1", "s2", "s3"]
HOLD_WINDOW_SECONDS = 300

# Strategies for generating operation sequences
session_ids = st.sampled_from(SESSIONS)
seat_picks = st.lists(st.integers(min_value=0, max_value=SEATS - 1), min_size=1, max_size=3)
operations = st.lists(
    st.one_of(
        st.tuples(st.just("attempt"), session_ids, seat_picks),
        st.tuples(st.just("release"), session_ids, seat_picks),
        st.tuples(st.just("commit"), session_ids, st.just([])),
        st.tuples(st.just("renew"), session_ids, st.just([])),
        st.tuples(st.just("advance"), st.just(""), st.sampled_from([[60], [200], [400]])),
        st.tuples(st.just("sweep"), st.just(""), st.just([])),
    ),
    min_size=1,
    max_size=20,
)


async def _run_scenario(ops, schedule_builder, clock_factory):
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    clock = clock_factory()
    events = SeatEventBroadcaster()
    locks = ScheduleLockRegistry(timeout_seconds=5)

    try:
        async with sessions() as db:
            bus = await schedule_builder(db, clock(), rows=SEATS // 2, columns=2)

        payments = 0
        for op, session_id, args in ops:
            async with sessions() as db:
                coordinator = SeatReservationCoordinator(
                    db,
                    events=events,
                    locks=locks,
                    clock=clock,
                    hold_window_seconds=HOLD_WINDOW_SECONDS,
                    max_seats_per_hold=3,
                )
                requested = [bus.seat_ids[index] for index in args] if op in ("attempt", "release") else []

                try:
                    if op == "attempt":
                        hold = await coordinator.attempt_hold(bus.id, requested, session_id)
                        assert set(hold.seat_ids) == set(requested)
                    elif op == "release":
                        await coordinator.release(bus.id, requested, session_id)
                    elif op == "commit":
                        payments += 1
                        await coordinator.commit(
                            bus.id,
                            session_id,
                            PaymentConfirmation(reference=f"pi_prop_{payments}", status=PaymentStatus.SUCCEEDED),
                            PassengerDetails(name="Prop Tester", email="prop@example.com", phone="+256 700 000002"),
                        )
                    elif op == "renew":
                        await coordinator.renew(bus.id, session_id)
                    elif op == "advance":
                        clock.advance(args[0])
                    else:
                        await coordinator.sweep_expired()
                except ProblemDetailsException:
                    # Rejections are part of the protocol; the invariants must still hold
                    pass

            async with sessions() as db:
                await _check_invariants(db, bus, clock())
    finally:
        await engine.dispose()


async def _check_invariants(db: AsyncSession, bus, now):
    held_rows = (await db.execute(
        select(HoldSeat.seat_id, Hold.session_id, Hold.expires_at).join(Hold, Hold.id == HoldSeat.hold_id)
    )).all()
    booked = {row.seat_id for row in (await db.execute(
        select(BookingSeat.seat_id).where(BookingSeat.released_at.is_(None))
    )).all()}
    live_held = {row.seat_id for row in held_rows if row.expires_at > now}

    # No seat sits in two holds
    assert all(count == 1 for count in Counter(row.seat_id for row in held_rows).values())

    # No seat is both held and booked
    assert not live_held & booked

    # One hold per session
    sessions_with_holds = Counter(
        session_id for session_id, in (await db.execute(select(Hold.session_id).where(Hold.schedule_id == bus.id))).all()
    )
    assert all(count == 1 for count in sessions_with_holds.values())

    seat_map = await ScheduleService(db).get_seat_map(bus.id, now=now)
    assert seat_map.total_seats == SEATS
    assert seat_map.available_seats + seat_map.held_seats + seat_map.booked_seats == SEATS
    assert seat_map.held_seats == len(live_held)
    assert seat_map.booked_seats == len(booked)


@settings(max_examples=30, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(ops=operations)
def test_seat_states_stay_consistent(ops, schedule_builder, clock_factory):
    """Any sequence of hold operations leaves every seat in exactly one state."""
    asyncio.run(_run_scenario(ops, schedule_builder, clock_factory))
