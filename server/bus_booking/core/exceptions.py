"""Errors rendered as RFC 9457 Problem Details documents."""

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .clock import isoformat_z, utcnow

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://bus-booking.dev/problems/"


def problem_type(slug: str) -> str:
    return f"{PROBLEM_BASE_URI}{slug}"


class ProblemDetailsException(HTTPException):
    """
    Base class for every error the API reports to clients.

    ``problem_details`` is the response body: the RFC 9457 members plus any
    extensions, which for domain errors always include ``code`` and
    ``retryable``.

    https://www.rfc-editor.org/rfc/rfc9457
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or "about:blank"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {"type": self.type_uri, "title": title, "status": status_code}
        if detail:
            self.problem_details["detail"] = detail
        if instance:
            self.problem_details["instance"] = instance
        self.problem_details.update(self.extensions)

        super().__init__(status_code=status_code, detail=self.problem_details, headers=headers)

    @property
    def code(self) -> Optional[str]:
        return self.problem_details.get("code")

    @property
    def retryable(self) -> bool:
        return bool(self.problem_details.get("retryable", False))


class ValidationError(ProblemDetailsException):
    """A request that is well-formed JSON but semantically invalid."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "INVALID_REQUEST", "retryable": False}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Invalid Request",
            detail=detail,
            type_uri=problem_type("invalid-request"),
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    def __init__(self, detail: str = "A valid bearer token is required", instance: Optional[str] = None):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri=problem_type("authentication-required"),
            instance=instance,
            extensions={"code": "UNAUTHENTICATED", "retryable": False},
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    def __init__(
        self,
        detail: str = "The token does not grant access to this operation",
        required_permissions: Optional[list] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "FORBIDDEN", "retryable": False}
        if required_permissions:
            extensions["required_permissions"] = required_permissions

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri=problem_type("forbidden"),
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """A route, schedule or booking that does not exist."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"No {resource_type} with id '{resource_id}'" if resource_id else f"No such {resource_type}"

        extensions: Dict[str, Any] = {"code": "NOT_FOUND", "retryable": False, "resource_type": resource_type}
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Not Found",
            detail=detail,
            type_uri=problem_type("not-found"),
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """A state change that contradicts what is already stored."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "CONFLICT", "retryable": False}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Conflict",
            detail=detail,
            type_uri=problem_type("conflict"),
            instance=instance,
            extensions=extensions,
        )


class RateLimitError(ProblemDetailsException):
    def __init__(
        self,
        detail: str = "Too many requests",
        retry_after: Optional[int] = None,
        limit: Optional[int] = None,
        window: Optional[int] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "RATE_LIMITED", "retryable": True}
        if limit:
            extensions["limit"] = limit
        if window:
            extensions["window_seconds"] = window

        headers = {}
        if retry_after:
            headers["Retry-After"] = str(retry_after)
            extensions["retry_after_seconds"] = retry_after

        super().__init__(
            status_code=429,
            title="Rate Limit Exceeded",
            detail=detail,
            type_uri=problem_type("rate-limited"),
            instance=instance,
            extensions=extensions,
            headers=headers,
        )


# Seat reservation exceptions

class SeatsUnavailableError(ProblemDetailsException):
    """
    One or more requested seats are held by another session or already booked.

    ``unavailable_seats`` lists exactly the blocked seats. ``held_by`` is an
    opaque reference to the blocking hold and never identifies the competing
    session or user.
    """

    def __init__(
        self,
        schedule_id: str,
        unavailable_seats: list[Dict[str, Any]],
        detail: Optional[str] = None,
    ):
        if not detail:
            seat_ids = ", ".join(seat["seat_id"] for seat in unavailable_seats)
            detail = f"Seats {seat_ids} are no longer available"

        super().__init__(
            status_code=409,
            title="Seats Unavailable",
            detail=detail,
            type_uri=problem_type("seats-unavailable"),
            extensions={
                "code": "SEATS_UNAVAILABLE",
                "retryable": False,
                "schedule_id": schedule_id,
                "unavailable_seats": unavailable_seats,
            },
        )
        self.schedule_id = schedule_id
        self.unavailable_seats = unavailable_seats

    @property
    def seat_ids(self) -> list[str]:
        return [seat["seat_id"] for seat in self.unavailable_seats]


class NotHeldError(ProblemDetailsException):
    """The caller does not hold (some of) the seats it tried to act on."""

    def __init__(
        self,
        schedule_id: str,
        not_held: Optional[list[str]] = None,
        held_by_other: Optional[list[str]] = None,
        detail: Optional[str] = None,
    ):
        not_held = not_held or []
        held_by_other = held_by_other or []
        if not detail:
            detail = "The session does not hold the requested seats on this schedule"

        super().__init__(
            status_code=409,
            title="Seats Not Held",
            detail=detail,
            type_uri=problem_type("not-held"),
            extensions={
                "code": "NOT_HELD",
                "retryable": False,
                "schedule_id": schedule_id,
                "not_held": not_held,
                "held_by_other": held_by_other,
            },
        )
        self.not_held = not_held
        self.held_by_other = held_by_other


class HoldExpiredError(ProblemDetailsException):
    """Exception when a hold has expired and its seats are no longer reserved."""

    def __init__(
        self,
        hold_id: str,
        expired_at,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"Hold {hold_id} expired at {isoformat_z(expired_at)}"

        super().__init__(
            status_code=410,
            title="Hold Expired",
            detail=detail,
            type_uri=problem_type("hold-expired"),
            instance=instance,
            extensions={
                "code": "HOLD_EXPIRED",
                "retryable": False,
                "hold_id": hold_id,
                "expired_at": isoformat_z(expired_at),
            },
        )


class InvalidSeatRequestError(ValidationError):
    """Malformed seat set or schedule, rejected before touching shared state."""

    def __init__(self, detail: str, errors: Optional[Dict[str, Any]] = None):
        super().__init__(detail=detail, errors=errors)


class PaymentNotConfirmedError(ProblemDetailsException):
    """The payment gateway did not report success for the given reference."""

    def __init__(self, payment_reference: str, payment_status: str):
        super().__init__(
            status_code=402,
            title="Payment Not Confirmed",
            detail=f"Payment {payment_reference} is {payment_status.lower()}",
            type_uri=problem_type("payment-not-confirmed"),
            extensions={
                "code": "PAYMENT_NOT_CONFIRMED",
                "retryable": payment_status == "PENDING",
                "payment_reference": payment_reference,
                "payment_status": payment_status,
            },
        )


class PersistenceFailureError(ProblemDetailsException):
    """
    The storage layer failed while committing a booking.

    Never retried automatically: the payment may already have been captured,
    so the reference is surfaced for reconciliation.
    """

    def __init__(self, operation: str, payment_reference: Optional[str] = None):
        error_id = str(uuid.uuid4())
        extensions = {
            "code": "PERSISTENCE_FAILURE",
            "retryable": False,
            "operation": operation,
            "error_id": error_id,
        }
        if payment_reference:
            extensions["payment_reference"] = payment_reference

        super().__init__(
            status_code=500,
            title="Persistence Failure",
            detail=f"The booking store failed during {operation}",
            type_uri=problem_type("persistence-failure"),
            extensions=extensions,
        )
        self.error_id = error_id


class ScheduleBusyError(ProblemDetailsException):
    """The schedule's reservation lock could not be acquired in time."""

    def __init__(self, schedule_id: str, timeout_seconds: float):
        super().__init__(
            status_code=503,
            title="Schedule Busy",
            detail=f"Schedule {schedule_id} is busy, retry shortly",
            type_uri=problem_type("schedule-busy"),
            extensions={
                "code": "SCHEDULE_BUSY",
                "retryable": True,
                "schedule_id": schedule_id,
                "timeout_seconds": timeout_seconds,
            },
            headers={"Retry-After": "1"},
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body validation failures as Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": problem_type("invalid-request"),
            "title": "Invalid Request",
            "status": 422,
            "detail": "The request data failed validation",
            "code": "INVALID_REQUEST",
            "retryable": False,
            "violations": violations,
        },
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )

    problem_details = {
        "type": problem_type("internal-server-error"),
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": isoformat_z(utcnow()),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
