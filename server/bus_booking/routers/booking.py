"""Booking router for booking operations."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock
from ..core.database import get_db
from ..core.dependencies import get_clock, get_coordinator, get_payment_gateway
from ..core.exceptions import NotFoundError, ProblemDetailsException, ValidationError
from ..core.identifiers import parse_uuid
from ..schemas.booking import (
    BookedSeat,
    Booking,
    CancelBookingRequest,
    CommitBookingRequest,
    GetBookingRequest,
)
from ..schemas.common import Money, problem_responses
from ..services.booking_service import BookingService
from ..services.idempotency_service import CachedResponse, IdempotencyService
from ..services.payment_gateway import PaymentGateway
from ..services.seat_reservation import SeatReservationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
COORDINATOR_DEPENDENCY = Depends(get_coordinator)
GATEWAY_DEPENDENCY = Depends(get_payment_gateway)
CLOCK_DEPENDENCY = Depends(get_clock)
IDEMPOTENCY_KEY_DEPENDENCY = Header(..., alias="Idempotency-Key")


async def _convert_booking_to_schema(booking_model, db: AsyncSession) -> Booking:
    """Convert booking model to schema, resolving seat labels."""
    seat_numbers = await BookingService(db).get_seat_numbers([seat.seat_id for seat in booking_model.seats])
    return Booking(
        id=str(booking_model.id),
        code=booking_model.code,
        schedule_id=str(booking_model.schedule_id),
        seats=[
            BookedSeat(
                seat_id=str(seat.seat_id),
                seat_number=seat_numbers.get(seat.seat_id),
                price=Money(amount=seat.price_amount, currency=booking_model.currency),
                passenger_name=seat.passenger_name
            )
            for seat in booking_model.seats
        ],
        passenger_name=booking_model.passenger_name,
        passenger_email=booking_model.passenger_email,
        total=Money(amount=booking_model.total_amount, currency=booking_model.currency),
        payment_reference=booking_model.payment_reference,
        status=booking_model.status,
        created_at=booking_model.created_at,
        cancelled_at=booking_model.cancelled_at
    )


def _is_replayable(error: ProblemDetailsException) -> bool:
    # Retryable and server-side failures must reach the operation again
    return error.status_code < 500 and not error.retryable


async def _handle_idempotent_operation(
    operation: str,
    idempotency_key: str,
    request_body: dict[str, Any],
    operation_func,
    idempotency: IdempotencyService
) -> JSONResponse:
    """Run ``operation_func`` once per key, replaying its stored outcome on retries."""
    idempotency_key = idempotency.validate_key(idempotency_key)

    cached = await idempotency.lookup(idempotency_key, operation, request_body)
    if cached is not None:
        return JSONResponse(
            status_code=cached.status_code,
            content=cached.body,
            headers=cached.headers,
            media_type="application/problem+json" if cached.status_code >= 400 else None
        )

    try:
        response_body = await operation_func()
    except ProblemDetailsException as e:
        if _is_replayable(e):
            await idempotency.store(
                idempotency_key,
                operation,
                request_body,
                CachedResponse(status_code=e.status_code, body=e.problem_details, headers=e.headers)
            )
        raise

    await idempotency.store(idempotency_key, operation, request_body, CachedResponse(status_code=200, body=response_body))
    return JSONResponse(status_code=200, content=response_body)


@router.post("/commit", response_model=Booking, responses=problem_responses(402, 409, 410))
async def commit_booking(
    request: CommitBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    coordinator: SeatReservationCoordinator = COORDINATOR_DEPENDENCY,
    gateway: PaymentGateway = GATEWAY_DEPENDENCY,
    clock: Clock = CLOCK_DEPENDENCY,
    idempotency_key: str = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Confirm payment and turn the session's hold into a booking.

    This operation is idempotent based on the Idempotency-Key header.
    """

    async def operation():
        schedule_id = parse_uuid(request.schedule_id, "schedule_id")
        payment = await gateway.confirm_payment(request.payment_reference, request.payment_method)

        booking = await coordinator.commit(
            schedule_id,
            request.session_id,
            payment,
            request.passenger,
            seat_ids=request.seat_ids,
            seat_passenger_names=request.seat_passenger_names
        )
        response_data = await _convert_booking_to_schema(booking, db)

        logger.info(
            "Booking committed via API",
            extra={
                "booking_id": response_data.id,
                "booking_code": response_data.code,
                "schedule_id": request.schedule_id,
                "idempotency_key": idempotency_key
            }
        )

        return response_data.model_dump(mode="json")

    try:
        return await _handle_idempotent_operation(
            operation="booking/commit",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation_func=operation,
            idempotency=IdempotencyService(db, clock=clock)
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking commit",
            extra={
                "schedule_id": request.schedule_id,
                "session_id": request.session_id,
                "payment_reference": request.payment_reference,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel", response_model=Booking, responses=problem_responses(404))
async def cancel_booking(
    request: CancelBookingRequest,
    db: AsyncSession = DB_DEPENDENCY,
    coordinator: SeatReservationCoordinator = COORDINATOR_DEPENDENCY,
    clock: Clock = CLOCK_DEPENDENCY,
    idempotency_key: str = IDEMPOTENCY_KEY_DEPENDENCY
) -> JSONResponse:
    """
    Cancel a booking and release its seats.

    This operation is idempotent based on the Idempotency-Key header.
    """

    async def operation():
        booking_id = parse_uuid(request.booking_id, "booking_id")
        booking = await coordinator.cancel_booking(booking_id)
        response_data = await _convert_booking_to_schema(booking, db)

        logger.info(
            "Booking cancelled via API",
            extra={
                "booking_id": request.booking_id,
                "booking_code": booking.code,
                "idempotency_key": idempotency_key
            }
        )

        return response_data.model_dump(mode="json")

    try:
        return await _handle_idempotent_operation(
            operation="booking/cancel",
            idempotency_key=idempotency_key,
            request_body=request.model_dump(mode="json"),
            operation_func=operation,
            idempotency=IdempotencyService(db, clock=clock)
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking cancellation",
            extra={
                "booking_id": request.booking_id,
                "idempotency_key": idempotency_key,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Booking)
async def get_booking(
    request: GetBookingRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Get booking details by ID or booking code.

    This is a read operation and does not require idempotency.
    """
    booking_service = BookingService(db)

    try:
        if request.booking_id:
            booking = await booking_service.get_booking(parse_uuid(request.booking_id, "booking_id"))
        elif request.code:
            booking = await booking_service.get_booking_by_code(request.code)
            if booking is None:
                raise NotFoundError(resource_type="booking", detail=f"No booking with code '{request.code}'")
        else:
            raise ValidationError(detail="Either booking_id or code is required")

        response_data = await _convert_booking_to_schema(booking, db)

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking retrieval",
            extra={"booking_id": request.booking_id, "code": request.code, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
