"""Hold router: seat holds for browser sessions."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from ..core.dependencies import SlidingWindowRateLimiter, get_coordinator, get_hold_rate_limiter
from ..core.exceptions import ProblemDetailsException
from ..core.identifiers import parse_uuid
from ..schemas.common import problem_responses
from ..schemas.hold import (
    AttemptHoldRequest,
    GetHoldRequest,
    Hold,
    HoldResult,
    ReleaseHoldRequest,
    RenewHoldRequest,
)
from ..services.seat_reservation import SeatReservationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/hold", tags=["hold"])

COORDINATOR_DEPENDENCY = Depends(get_coordinator)
RATE_LIMITER_DEPENDENCY = Depends(get_hold_rate_limiter)


def convert_hold_to_schema(hold_model) -> Hold:
    """Convert hold model to schema."""
    return Hold(
        id=str(hold_model.id),
        schedule_id=str(hold_model.schedule_id),
        session_id=hold_model.session_id,
        seat_ids=[str(seat_id) for seat_id in hold_model.seat_ids],
        created_at=hold_model.created_at,
        expires_at=hold_model.expires_at
    )


def _hold_result(hold_model) -> JSONResponse:
    result = HoldResult(hold=convert_hold_to_schema(hold_model) if hold_model else None)
    return JSONResponse(status_code=200, content=result.model_dump(mode="json"))


@router.post("/attempt", response_model=Hold, responses=problem_responses(400, 409, 429, 503))
async def attempt_hold(
    request: AttemptHoldRequest,
    coordinator: SeatReservationCoordinator = COORDINATOR_DEPENDENCY,
    rate_limiter: SlidingWindowRateLimiter = RATE_LIMITER_DEPENDENCY
) -> JSONResponse:
    """
    Hold seats for the session, replacing any seats it held before.

    Rate limited per session.
    """
    try:
        rate_limiter.hit(request.session_id)
        schedule_id = parse_uuid(request.schedule_id, "schedule_id")

        hold = await coordinator.attempt_hold(schedule_id, request.seat_ids, request.session_id)

        return JSONResponse(
            status_code=200,
            content=convert_hold_to_schema(hold).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold attempt",
            extra={
                "schedule_id": request.schedule_id,
                "session_id": request.session_id,
                "seats": len(request.seat_ids),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/release", response_model=HoldResult, responses=problem_responses(400, 409))
async def release_hold(
    request: ReleaseHoldRequest,
    coordinator: SeatReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """Release some or all of the session's held seats."""
    try:
        schedule_id = parse_uuid(request.schedule_id, "schedule_id")
        remaining = await coordinator.release(schedule_id, request.seat_ids, request.session_id)
        return _hold_result(remaining)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold release",
            extra={"schedule_id": request.schedule_id, "session_id": request.session_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/renew", response_model=Hold, responses=problem_responses(409))
async def renew_hold(
    request: RenewHoldRequest,
    coordinator: SeatReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """Give the session's live hold a fresh expiry window."""
    try:
        schedule_id = parse_uuid(request.schedule_id, "schedule_id")
        hold = await coordinator.renew(schedule_id, request.session_id)

        return JSONResponse(
            status_code=200,
            content=convert_hold_to_schema(hold).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold renewal",
            extra={"schedule_id": request.schedule_id, "session_id": request.session_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=HoldResult)
async def get_hold(
    request: GetHoldRequest,
    coordinator: SeatReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """Return the session's live hold on the schedule, or null."""
    try:
        schedule_id = parse_uuid(request.schedule_id, "schedule_id")
        hold = await coordinator.get_session_hold(schedule_id, request.session_id)
        return _hold_result(hold)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in hold retrieval",
            extra={"schedule_id": request.schedule_id, "session_id": request.session_id, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
