"""Booking-related Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .common import Money
from .schedule import SessionScopedRequest


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    CONFIRMED = "CONFIRMED"
    CANCELED = "CANCELED"


class PassengerDetails(BaseModel):
    """Lead passenger contact details."""

    name: str = Field(..., min_length=1, max_length=255, description="Passenger full name")
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Contact e-mail")
    phone: str = Field(..., min_length=5, max_length=32, pattern=r"^\+?[0-9 ()-]+$", description="Contact phone")


class CommitBookingRequest(SessionScopedRequest):
    """Request schema for turning the session's hold into a booking."""

    payment_reference: str = Field(..., min_length=1, max_length=255, description="Payment intent reference")
    payment_method: str = Field(..., min_length=1, max_length=64, description="Payment method token")
    passenger: PassengerDetails = Field(..., description="Lead passenger")
    seat_ids: list[str] | None = Field(None, description="Expected held seats, checked against the hold")
    seat_passenger_names: dict[str, str] | None = Field(
        None, description="Optional passenger name per seat ID"
    )


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: str = Field(..., description="Booking to cancel")


class GetBookingRequest(BaseModel):
    """Request schema for getting a booking by ID or code."""

    booking_id: str | None = Field(None, description="Booking to retrieve")
    code: str | None = Field(None, max_length=32, description="Booking code (PNR)")


class BookedSeat(BaseModel):
    """One seat of a booking."""

    seat_id: str = Field(..., description="Seat ID")
    seat_number: str | None = Field(None, description="Seat label")
    price: Money = Field(..., description="Price paid")
    passenger_name: str | None = Field(None, description="Seat passenger")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    code: str = Field(..., description="Booking confirmation code")
    schedule_id: str = Field(..., description="Associated schedule ID")
    seats: list[BookedSeat] = Field(..., description="Booked seats")
    passenger_name: str = Field(..., description="Lead passenger")
    passenger_email: str = Field(..., description="Contact e-mail")
    total: Money = Field(..., description="Total paid")
    payment_reference: str = Field(..., description="Payment reference")
    status: BookingStatus = Field(..., description="Booking status")
    created_at: datetime = Field(..., description="Booking creation time (ISO 8601)")
    cancelled_at: datetime | None = Field(None, description="Cancellation time (ISO 8601)")
