"""Real-time seat event payloads."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class UnlockReason(str, Enum):
    """Why seats went back to available."""
    RELEASED = "released"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"
    CANCELLED = "cancelled"


class SeatEvent(BaseModel):
    """Base for seat events broadcast on a schedule topic."""

    schedule_id: str = Field(..., description="Schedule the seats belong to")
    seat_ids: list[str] = Field(..., description="Affected seats")
    timestamp: datetime = Field(..., description="Event time (ISO 8601)")


class SeatsBeingLocked(SeatEvent):
    """Advisory: a session is trying to hold these seats."""

    type: Literal["seats-being-locked"] = "seats-being-locked"
    session_id: str


class SeatsLocked(SeatEvent):
    """A hold now covers these seats."""

    type: Literal["seats-locked"] = "seats-locked"
    session_id: str
    expires_at: datetime


class SeatsUnlocked(SeatEvent):
    """These seats are available again."""

    type: Literal["seats-unlocked"] = "seats-unlocked"
    session_id: str | None = None
    reason: UnlockReason


class SeatsBooked(SeatEvent):
    """These seats were committed to a booking."""

    type: Literal["seats-booked"] = "seats-booked"
    booking_id: str


class ClientMessage(BaseModel):
    """Message sent by a browser over the real-time socket."""

    type: Literal["join-schedule", "leave-schedule", "ping"]
    schedule_id: str | None = None
