"""Hold-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from .schedule import SessionScopedRequest


class AttemptHoldRequest(SessionScopedRequest):
    """Request schema for holding seats."""

    seat_ids: list[str] = Field(..., description="Seats to hold")


class ReleaseHoldRequest(SessionScopedRequest):
    """Request schema for releasing held seats."""

    seat_ids: list[str] = Field(..., min_length=1, description="Seats to release")


class RenewHoldRequest(SessionScopedRequest):
    """Request schema for renewing the session's hold."""


class GetHoldRequest(SessionScopedRequest):
    """Request schema for reading the session's hold."""


class Hold(BaseModel):
    """Hold response schema."""

    id: str = Field(..., description="Unique hold ID")
    schedule_id: str = Field(..., description="Associated schedule ID")
    session_id: str = Field(..., description="Owning session")
    seat_ids: list[str] = Field(..., description="Held seats")
    created_at: datetime = Field(..., description="Hold creation time (ISO 8601)")
    expires_at: datetime = Field(..., description="Hold expiration time (ISO 8601)")


class HoldResult(BaseModel):
    """Result of release or get; ``hold`` is null when the session holds nothing."""

    hold: Hold | None = Field(None, description="Remaining hold")
