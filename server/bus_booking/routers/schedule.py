"""Schedule router: schedule management, search and seat maps."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock
from ..core.database import get_db
from ..core.dependencies import AdminAuth, get_clock
from ..core.exceptions import ProblemDetailsException
from ..core.identifiers import parse_uuid
from ..schemas.common import Money
from ..schemas.schedule import (
    CreateScheduleRequest,
    GetSeatMapRequest,
    Schedule,
    SearchSchedulesRequest,
    SearchSchedulesResponse,
    SeatMap,
)
from ..services.schedule_service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/schedule", tags=["schedule"])


def _convert_schedule_to_schema(schedule_model, total_seats: int) -> Schedule:
    """Convert schedule model to schema with Money conversion."""
    currency = schedule_model.price_currency
    premium_amount = schedule_model.premium_price_amount
    if premium_amount is None:
        premium_amount = schedule_model.base_price_amount

    return Schedule(
        id=str(schedule_model.id),
        route_id=str(schedule_model.route_id),
        origin=schedule_model.route.origin,
        destination=schedule_model.route.destination,
        operator_name=schedule_model.route.operator_name,
        bus_number=schedule_model.bus_number,
        departure_time=schedule_model.departure_time,
        arrival_time=schedule_model.arrival_time,
        price=Money(amount=schedule_model.base_price_amount, currency=currency),
        premium_price=Money(amount=premium_amount, currency=currency),
        total_seats=total_seats,
        is_active=schedule_model.is_active
    )


@router.post("/create", response_model=Schedule)
async def create_schedule(
    request: CreateScheduleRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    """Create a schedule and its seat layout. Requires the admin role."""
    schedule_service = ScheduleService(db)

    try:
        schedule = await schedule_service.create_schedule(request)
        response_data = _convert_schedule_to_schema(schedule, len(schedule.seats))

        logger.info(
            "Schedule created via API",
            extra={
                "schedule_id": response_data.id,
                "route_id": request.route_id,
                "admin": user["user_id"]
            }
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in schedule creation",
            extra={
                "route_id": request.route_id,
                "departure_time": request.departure_time.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/search", response_model=SearchSchedulesResponse)
async def search_schedules(
    request: SearchSchedulesRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """
    Search schedules.

    Supports filtering by route, origin, destination and travel date.
    """
    schedule_service = ScheduleService(db)

    try:
        schedules, seat_counts, next_cursor = await schedule_service.search_schedules(request)
        response_data = SearchSchedulesResponse(
            items=[
                _convert_schedule_to_schema(schedule, seat_counts.get(schedule.id, 0))
                for schedule in schedules
            ],
            next_cursor=next_cursor
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in schedule search",
            extra={"origin": request.origin, "destination": request.destination, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/seats", response_model=SeatMap)
async def get_seat_map(
    request: GetSeatMapRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> JSONResponse:
    """Return the per-seat state of a schedule for the caller's session."""
    schedule_service = ScheduleService(db)

    try:
        schedule_id = parse_uuid(request.schedule_id, "schedule_id")
        seat_map = await schedule_service.get_seat_map(schedule_id, request.session_id, now=clock())

        return JSONResponse(
            status_code=200,
            content=seat_map.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in seat map retrieval",
            extra={"schedule_id": request.schedule_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
