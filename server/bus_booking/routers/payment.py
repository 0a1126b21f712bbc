"""Payment router: payment intents for held seats."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_coordinator, get_payment_gateway
from ..core.exceptions import NotHeldError, ProblemDetailsException
from ..core.identifiers import parse_uuid
from ..schemas.common import Money, problem_responses
from ..schemas.payment import CreatePaymentIntentRequest, PaymentIntent
from ..services.booking_service import BookingService
from ..services.payment_gateway import PaymentGateway
from ..services.schedule_service import ScheduleService
from ..services.seat_reservation import SeatReservationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payment", tags=["payment"])


@router.post("/intent", response_model=PaymentIntent, responses=problem_responses(409))
async def create_payment_intent(
    request: CreatePaymentIntentRequest,
    db: AsyncSession = Depends(get_db),
    coordinator: SeatReservationCoordinator = Depends(get_coordinator),
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> JSONResponse:
    """
    Price the session's live hold and open a payment intent for it.

    The hold is not extended; the client should pay before it expires.
    """
    try:
        schedule_id = parse_uuid(request.schedule_id, "schedule_id")
        hold = await coordinator.get_session_hold(schedule_id, request.session_id)
        if hold is None:
            raise NotHeldError(request.schedule_id, detail="The session has no live hold on this schedule")

        schedule = await ScheduleService(db).get_schedule_by_id_or_raise(schedule_id)
        amount = await BookingService(db).price_seats(schedule_id, hold.seat_ids)

        intent = await gateway.create_payment_intent(
            amount,
            schedule.price_currency,
            metadata={
                "schedule_id": request.schedule_id,
                "session_id": request.session_id,
                "hold_id": str(hold.id),
                "seat_ids": ",".join(str(seat_id) for seat_id in hold.seat_ids),
            }
        )

        response_data = PaymentIntent(
            reference=intent.reference,
            client_secret=intent.client_secret,
            amount=Money(amount=intent.amount, currency=intent.currency),
            status=intent.status
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in payment intent creation",
            extra={"schedule_id": request.schedule_id, "session_id": request.session_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
