"""Schedule service: schedules, their seat layouts and seat maps."""

import logging
import string
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.clock import utcnow
from ..core.database import supports_advisory_locks
from ..core.exceptions import NotFoundError
from ..core.identifiers import parse_uuid
from ..models.booking import BookingSeat
from ..models.hold import Hold, HoldSeat
from ..models.route import Route
from ..models.schedule import Schedule
from ..models.seat import Seat, SeatType
from ..schemas.common import Money
from ..schemas.schedule import (
    CreateScheduleRequest,
    SearchSchedulesRequest,
    SeatLayout,
    SeatMap,
    SeatState,
    SeatStatus,
)
from .route_service import RouteService

logger = logging.getLogger(__name__)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = (value - value.utcoffset()).replace(tzinfo=None)
    return value


def build_seat_layout(layout: SeatLayout, base_price: int, premium_price: int) -> list[Seat]:
    """
    Generate seats for a rows by columns layout.

    Seats are numbered by row then letter ("1A", "1B", ...). The first
    ``premium_rows`` rows are premium seats.
    """
    seats = []
    for row in range(1, layout.rows + 1):
        is_premium = row <= layout.premium_rows
        for letter in string.ascii_uppercase[:layout.columns]:
            seats.append(Seat(
                seat_number=f"{row}{letter}",
                seat_type=(SeatType.PREMIUM if is_premium else SeatType.REGULAR).value,
                price_amount=premium_price if is_premium else base_price
            ))
    return seats


def seat_sort_key(seat_number: str) -> tuple[int, str]:
    """Order seat labels by row number, then letter."""
    row = seat_number.rstrip(string.ascii_uppercase)
    return (int(row) if row.isdigit() else 0, seat_number[len(row):])


class ScheduleService:
    """Service for schedule-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.route_service = RouteService(db)

    async def create_schedule(self, request: CreateScheduleRequest) -> Schedule:
        """
        Create a new schedule together with its seats.

        Args:
            request: Schedule creation request

        Returns:
            Created schedule entity, route loaded

        Raises:
            NotFoundError: If route not found
        """
        route_id = parse_uuid(request.route_id, "route_id")
        route = await self.route_service.get_route_by_id_or_raise(route_id)

        base_price = request.price.amount
        premium_price = request.premium_price.amount if request.premium_price else base_price

        schedule = Schedule(
            route_id=route.id,
            bus_number=request.bus_number,
            departure_time=_to_naive_utc(request.departure_time),
            arrival_time=_to_naive_utc(request.arrival_time),
            base_price_amount=base_price,
            premium_price_amount=premium_price,
            price_currency=request.price.currency,
            is_active=True
        )
        schedule.seats = build_seat_layout(request.layout, base_price, premium_price)

        self.db.add(schedule)
        await self.db.commit()
        await self.db.refresh(schedule, attribute_names=["route", "seats"])

        logger.info(
            "Schedule created successfully",
            extra={
                "schedule_id": str(schedule.id),
                "route_id": str(route.id),
                "departure_time": schedule.departure_time.isoformat(),
                "total_seats": len(schedule.seats)
            }
        )

        return schedule

    async def search_schedules(
        self,
        request: SearchSchedulesRequest
    ) -> tuple[list[Schedule], dict[UUID, int], str | None]:
        """
        Search schedules by route, endpoints and travel date.

        Returns:
            Matching schedules, seat count per schedule, and the next cursor
        """
        stmt = select(Schedule).join(Route).options(selectinload(Schedule.route))

        conditions = []

        if request.route_id:
            conditions.append(Schedule.route_id == parse_uuid(request.route_id, "route_id"))

        if request.origin:
            conditions.append(func.lower(Route.origin) == request.origin.strip().lower())

        if request.destination:
            conditions.append(func.lower(Route.destination) == request.destination.strip().lower())

        if request.travel_date:
            day_start = datetime.combine(request.travel_date, datetime.min.time())
            conditions.append(Schedule.departure_time >= day_start)
            conditions.append(Schedule.departure_time < day_start + timedelta(days=1))

        if not request.include_inactive:
            conditions.append(Schedule.is_active.is_(True))

        if request.cursor:
            try:
                conditions.append(Schedule.id > UUID(request.cursor))
            except ValueError:
                logger.warning(
                    "Invalid cursor provided in schedule search",
                    extra={"cursor": request.cursor}
                )

        if conditions:
            stmt = stmt.where(and_(*conditions))

        # Order by ID for consistent pagination
        stmt = stmt.order_by(Schedule.id).limit(request.limit + 1)

        result = await self.db.execute(stmt)
        schedules = list(result.scalars())

        next_cursor = None
        if len(schedules) > request.limit:
            schedules = schedules[:request.limit]
            next_cursor = str(schedules[-1].id)

        seat_counts = await self.count_seats([schedule.id for schedule in schedules])

        logger.info(
            "Schedule search completed",
            extra={
                "total_found": len(schedules),
                "has_next_page": next_cursor is not None,
                "filters": {
                    "route_id": request.route_id,
                    "origin": request.origin,
                    "destination": request.destination,
                    "travel_date": request.travel_date.isoformat() if request.travel_date else None
                }
            }
        )

        return schedules, seat_counts, next_cursor

    async def count_seats(self, schedule_ids: list[UUID]) -> dict[UUID, int]:
        if not schedule_ids:
            return {}
        stmt = (
            select(Seat.schedule_id, func.count(Seat.id))
            .where(Seat.schedule_id.in_(schedule_ids))
            .group_by(Seat.schedule_id)
        )
        result = await self.db.execute(stmt)
        return {schedule_id: count for schedule_id, count in result.all()}

    async def get_schedule_by_id(self, schedule_id: UUID) -> Schedule | None:
        stmt = (
            select(Schedule)
            .where(Schedule.id == schedule_id)
            .options(selectinload(Schedule.route), selectinload(Schedule.seats))
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_schedule_by_id_or_raise(self, schedule_id: UUID) -> Schedule:
        """
        Get schedule by ID or raise NotFoundError.

        Raises:
            NotFoundError: If schedule not found
        """
        schedule = await self.get_schedule_by_id(schedule_id)
        if not schedule:
            logger.warning("Schedule not found", extra={"schedule_id": str(schedule_id)})
            raise NotFoundError(resource_type="schedule", resource_id=str(schedule_id))
        return schedule

    async def lock_schedule(self, schedule_id: UUID) -> None:
        """
        Take the schedule's advisory lock in the current transaction.

        The lock serializes hold and booking changes on this schedule across
        processes and is released when the transaction ends. A no-op on
        databases without advisory locks.
        """
        if supports_advisory_locks(self.db):
            await self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:schedule_id))"),
                {"schedule_id": str(schedule_id)}
            )

    async def get_schedule_with_lock(self, schedule_id: UUID) -> Schedule:
        """
        Get schedule by ID with its advisory lock held for seat modifications.

        Raises:
            NotFoundError: If schedule not found
        """
        await self.lock_schedule(schedule_id)
        schedule = await self.get_schedule_by_id_or_raise(schedule_id)

        logger.debug(
            "Acquired advisory lock for schedule",
            extra={"schedule_id": str(schedule_id)}
        )

        return schedule

    async def get_seat_map(
        self,
        schedule_id: UUID,
        session_id: str | None = None,
        now: datetime | None = None
    ) -> SeatMap:
        """
        Render the per-seat state of a schedule.

        Expired holds that the sweep has not removed yet are shown as
        available. ``held_by_you`` marks seats covered by the caller's hold.
        """
        now = now or utcnow()
        schedule = await self.get_schedule_by_id_or_raise(schedule_id)

        held_stmt = (
            select(HoldSeat.seat_id, Hold.session_id, Hold.expires_at)
            .join(Hold, Hold.id == HoldSeat.hold_id)
            .where(HoldSeat.schedule_id == schedule_id, Hold.expires_at > now)
        )
        held = {
            seat_id: (holder, expires_at)
            for seat_id, holder, expires_at in (await self.db.execute(held_stmt)).all()
        }

        booked_stmt = select(BookingSeat.seat_id).where(
            BookingSeat.schedule_id == schedule_id,
            BookingSeat.released_at.is_(None)
        )
        booked = set((await self.db.execute(booked_stmt)).scalars())

        seats = []
        for seat in sorted(schedule.seats, key=lambda s: seat_sort_key(s.seat_number)):
            state = SeatState.AVAILABLE
            held_by_you = False
            hold_expires_at = None
            if seat.id in booked:
                state = SeatState.BOOKED
            elif seat.id in held:
                state = SeatState.HELD
                holder, hold_expires_at = held[seat.id]
                held_by_you = session_id is not None and holder == session_id

            seats.append(SeatStatus(
                seat_id=str(seat.id),
                seat_number=seat.seat_number,
                seat_type=seat.seat_type,
                price=Money(amount=seat.price_amount, currency=schedule.price_currency),
                state=state,
                held_by_you=held_by_you,
                hold_expires_at=hold_expires_at
            ))

        booked_count = sum(1 for seat in seats if seat.state == SeatState.BOOKED)
        held_count = sum(1 for seat in seats if seat.state == SeatState.HELD)

        return SeatMap(
            schedule_id=str(schedule.id),
            seats=seats,
            total_seats=len(seats),
            available_seats=len(seats) - booked_count - held_count,
            held_seats=held_count,
            booked_seats=booked_count
        )
