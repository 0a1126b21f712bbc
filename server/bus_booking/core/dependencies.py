"""FastAPI dependencies for authentication, rate limiting and shared services."""

import time
from collections import deque
from typing import Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from ..services.payment_gateway import PaymentGateway, payment_gateway
from ..services.seat_events import SeatEventBroadcaster, seat_events
from ..services.seat_reservation import ScheduleLockRegistry, SeatReservationCoordinator, schedule_locks
from .clock import Clock, utcnow
from .config import settings
from .database import get_db
from .exceptions import AuthenticationError, AuthorizationError, RateLimitError


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: User information from validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format") from None

    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")

    try:
        # PyJWT rejects expired tokens when an exp claim is present
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}") from e

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token payload")

    return {
        "user_id": user_id,
        "username": payload.get("username"),
        "email": payload.get("email"),
        "roles": payload.get("roles", []),
    }


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """Allow only tokens carrying the admin role."""
    if "admin" not in user["roles"]:
        raise AuthorizationError(required_permissions=["admin"])
    return user


class SlidingWindowRateLimiter:
    """
    In-memory per-key request limiter.

    Counts are kept per process.
    """

    def __init__(self, limit: int, window_seconds: int = 60):
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: dict[str, deque[float]] = {}

    def hit(self, key: str, now: float | None = None) -> None:
        """
        Record one request for ``key``.

        Raises:
            RateLimitError: If the key exceeded its limit in the current window
        """
        now = time.monotonic() if now is None else now
        window_start = now - self.window_seconds

        hits = self._hits.setdefault(key, deque())
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= self.limit:
            retry_after = max(1, int(hits[0] + self.window_seconds - now) + 1)
            raise RateLimitError(
                detail=f"Too many requests. Try again in {retry_after} seconds.",
                retry_after=retry_after,
                limit=self.limit,
                window=self.window_seconds,
            )

        hits.append(now)

        # Bound the key table
        if len(self._hits) > 10_000:
            for idle in [k for k, v in self._hits.items() if not v or v[-1] <= window_start]:
                del self._hits[idle]

    def reset(self) -> None:
        self._hits.clear()


hold_rate_limiter = SlidingWindowRateLimiter(limit=settings.hold_rate_limit_per_minute)


def get_hold_rate_limiter() -> SlidingWindowRateLimiter:
    return hold_rate_limiter


# Reusable dependency markers
RequiredAuth = Depends(get_current_user)
AdminAuth = Depends(require_admin)


def get_clock() -> Clock:
    return utcnow


def get_seat_events() -> SeatEventBroadcaster:
    return seat_events


def get_schedule_locks() -> ScheduleLockRegistry:
    return schedule_locks


def get_payment_gateway() -> PaymentGateway:
    return payment_gateway


async def get_coordinator(
    db: AsyncSession = Depends(get_db),
    events: SeatEventBroadcaster = Depends(get_seat_events),
    locks: ScheduleLockRegistry = Depends(get_schedule_locks),
    clock: Clock = Depends(get_clock),
) -> SeatReservationCoordinator:
    """Coordinator bound to the request's database session."""
    return SeatReservationCoordinator(db, events=events, locks=locks, clock=clock)
