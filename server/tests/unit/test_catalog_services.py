"""Tests for route and schedule services."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from bus_booking.core.exceptions import ConflictError, NotFoundError, ValidationError
from bus_booking.schemas.common import Money
from bus_booking.schemas.route import CreateRouteRequest, SearchRoutesRequest
from bus_booking.schemas.schedule import CreateScheduleRequest, SearchSchedulesRequest, SeatLayout, SeatState
from bus_booking.services.route_service import RouteService
from bus_booking.services.schedule_service import ScheduleService, build_seat_layout, seat_sort_key


def route_request(**overrides) -> CreateRouteRequest:
    data = {
        "origin": "kampala",
        "destination": "mbarara",
        "operator_name": "Link Bus",
        "distance_km": 270,
        "duration_minutes": 300,
    }
    data.update(overrides)
    return CreateRouteRequest(**data)


class TestRouteService:

    @pytest.mark.asyncio
    async def test_create_route_normalizes_cities(self, test_session):
        route = await RouteService(test_session).create_route(route_request())

        assert route.origin == "Kampala"
        assert route.destination == "Mbarara"
        assert route.operator_name == "Link Bus"

    @pytest.mark.asyncio
    async def test_duplicate_route(self, test_session):
        service = RouteService(test_session)
        await service.create_route(route_request())

        with pytest.raises(ConflictError):
            await service.create_route(route_request(origin="KAMPALA"))

    @pytest.mark.asyncio
    async def test_same_endpoints(self, test_session):
        with pytest.raises(ValidationError):
            await RouteService(test_session).create_route(route_request(destination="Kampala"))

    @pytest.mark.asyncio
    async def test_search_by_origin_with_pagination(self, test_session):
        service = RouteService(test_session)
        for destination in ["Mbarara", "Gulu", "Jinja"]:
            await service.create_route(route_request(destination=destination))
        await service.create_route(route_request(origin="Gulu", destination="Lira"))

        first_page, cursor = await service.search_routes(SearchRoutesRequest(origin="kampala", limit=2))
        second_page, last_cursor = await service.search_routes(
            SearchRoutesRequest(origin="kampala", limit=2, cursor=cursor)
        )

        assert len(first_page) == 2
        assert cursor is not None
        assert len(second_page) == 1
        assert last_cursor is None
        destinations = {route.destination for route in first_page + second_page}
        assert destinations == {"Mbarara", "Gulu", "Jinja"}

    @pytest.mark.asyncio
    async def test_missing_route(self, test_session):
        with pytest.raises(NotFoundError):
            await RouteService(test_session).get_route_by_id_or_raise(uuid4())


class TestSeatLayout:

    def test_seat_numbers_and_premium_rows(self):
        seats = build_seat_layout(SeatLayout(rows=3, columns=2, premium_rows=1), 1000, 1800)

        assert [seat.seat_number for seat in seats] == ["1A", "1B", "2A", "2B", "3A", "3B"]
        assert [seat.seat_type for seat in seats[:2]] == ["PREMIUM", "PREMIUM"]
        assert {seat.price_amount for seat in seats[2:]} == {1000}
        assert seats[0].price_amount == 1800

    def test_premium_rows_cannot_exceed_rows(self):
        with pytest.raises(PydanticValidationError):
            SeatLayout(rows=2, columns=2, premium_rows=3)

    def test_seat_sort_key_orders_rows_numerically(self):
        labels = ["10A", "2B", "1A", "2A", "9C"]

        assert sorted(labels, key=seat_sort_key) == ["1A", "2A", "2B", "9C", "10A"]


class TestScheduleService:

    @pytest.mark.asyncio
    async def test_create_schedule_builds_seats(self, test_session):
        route = await RouteService(test_session).create_route(route_request())
        departure = datetime(2030, 6, 2, 9, 0, tzinfo=timezone(timedelta(hours=3)))

        schedule = await ScheduleService(test_session).create_schedule(CreateScheduleRequest(
            route_id=str(route.id),
            bus_number="UBA-777",
            departure_time=departure,
            arrival_time=departure + timedelta(hours=5),
            price=Money(amount=3000, currency="USD"),
            layout=SeatLayout(rows=3, columns=4, premium_rows=1),
        ))

        # Stored as naive UTC
        assert schedule.departure_time == datetime(2030, 6, 2, 6, 0)
        assert len(schedule.seats) == 12
        # Premium defaults to the regular price
        assert schedule.premium_price_amount == 3000
        assert schedule.route.origin == "Kampala"

    @pytest.mark.asyncio
    async def test_create_schedule_for_unknown_route(self, test_session, clock):
        with pytest.raises(NotFoundError):
            await ScheduleService(test_session).create_schedule(CreateScheduleRequest(
                route_id=str(uuid4()),
                bus_number="UBA-777",
                departure_time=clock() + timedelta(days=1),
                arrival_time=clock() + timedelta(days=1, hours=5),
                price=Money(amount=3000, currency="USD"),
            ))

    def test_arrival_must_follow_departure(self, clock):
        with pytest.raises(PydanticValidationError):
            CreateScheduleRequest(
                route_id=str(uuid4()),
                bus_number="UBA-777",
                departure_time=clock(),
                arrival_time=clock() - timedelta(hours=1),
                price=Money(amount=3000, currency="USD"),
            )

    @pytest.mark.asyncio
    async def test_search_by_travel_date(self, test_session, schedule, schedule_factory, clock):
        await schedule_factory(departs_in=timedelta(days=3))
        service = ScheduleService(test_session)

        schedules, seat_counts, cursor = await service.search_schedules(
            SearchSchedulesRequest(origin="kampala", travel_date=(clock() + timedelta(days=1)).date())
        )

        assert [s.id for s in schedules] == [schedule.id]
        assert seat_counts == {schedule.id: 4}
        assert cursor is None

    @pytest.mark.asyncio
    async def test_seat_map_marks_own_holds(self, test_session, coordinator, schedule, clock):
        hold = await coordinator.attempt_hold(schedule.id, [schedule.seat("1A")], "session-a")
        expires_at = hold.expires_at
        await coordinator.attempt_hold(schedule.id, [schedule.seat("1B")], "session-b")

        seat_map = await ScheduleService(test_session).get_seat_map(schedule.id, "session-a", now=clock())
        seats = {seat.seat_number: seat for seat in seat_map.seats}

        assert seats["1A"].state == SeatState.HELD
        assert seats["1A"].held_by_you is True
        assert seats["1A"].hold_expires_at == expires_at
        assert seats["1B"].state == SeatState.HELD
        assert seats["1B"].held_by_you is False
        assert seat_map.held_seats == 2
        assert seat_map.available_seats == 2
        assert seat_map.total_seats == 4

    @pytest.mark.asyncio
    async def test_seat_map_ignores_unswept_expired_holds(self, test_session, coordinator, schedule, clock):
        await coordinator.attempt_hold(schedule.id, [schedule.seat("1A")], "session-a")
        clock.advance(301)

        seat_map = await ScheduleService(test_session).get_seat_map(schedule.id, now=clock())

        assert seat_map.available_seats == 4

    @pytest.mark.asyncio
    async def test_seat_map_for_unknown_schedule(self, test_session):
        with pytest.raises(NotFoundError):
            await ScheduleService(test_session).get_seat_map(uuid4())
