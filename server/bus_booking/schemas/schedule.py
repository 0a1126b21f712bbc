"""Schedule and seat map Pydantic schemas."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from .common import Money, PaginatedResponse


class SeatState(str, Enum):
    """Seat state as seen by a browser session."""
    AVAILABLE = "available"
    HELD = "held"
    BOOKED = "booked"


class SeatLayout(BaseModel):
    """Rows by columns seat layout; the first ``premium_rows`` rows are premium."""

    rows: int = Field(10, ge=1, le=30, description="Number of seat rows")
    columns: int = Field(4, ge=1, le=6, description="Seats per row, lettered from A")
    premium_rows: int = Field(0, ge=0, description="Leading rows sold at the premium price")

    @model_validator(mode="after")
    def check_premium_rows(self) -> "SeatLayout":
        if self.premium_rows > self.rows:
            raise ValueError("premium_rows cannot exceed rows")
        return self


class CreateScheduleRequest(BaseModel):
    """Request schema for creating a schedule."""

    route_id: str = Field(..., description="Route this schedule runs")
    bus_number: str = Field(..., min_length=1, max_length=32, description="Bus registration or fleet number")
    departure_time: datetime = Field(..., description="Departure time (ISO 8601, UTC)")
    arrival_time: datetime = Field(..., description="Arrival time (ISO 8601, UTC)")
    price: Money = Field(..., description="Regular seat price")
    premium_price: Money | None = Field(None, description="Premium seat price, defaults to the regular price")
    layout: SeatLayout = Field(default_factory=SeatLayout, description="Seat layout")

    @model_validator(mode="after")
    def check_times_and_currency(self) -> "CreateScheduleRequest":
        if self.arrival_time <= self.departure_time:
            raise ValueError("arrival_time must be after departure_time")
        if self.premium_price and self.premium_price.currency != self.price.currency:
            raise ValueError("premium_price currency must match price currency")
        return self


class SearchSchedulesRequest(BaseModel):
    """Request schema for searching schedules."""

    route_id: str | None = Field(None, description="Filter by route ID")
    origin: str | None = Field(None, max_length=100, description="Filter by departure city")
    destination: str | None = Field(None, max_length=100, description="Filter by arrival city")
    travel_date: date | None = Field(None, description="Departure date (UTC)")
    include_inactive: bool = Field(False, description="Also return deactivated schedules")
    cursor: str | None = Field(None, description="Pagination cursor")
    limit: int = Field(20, ge=1, le=100, description="Results per page")


class Schedule(BaseModel):
    """Schedule response schema."""

    id: str = Field(..., description="Unique schedule ID")
    route_id: str = Field(..., description="Associated route ID")
    origin: str = Field(..., description="Departure city")
    destination: str = Field(..., description="Arrival city")
    operator_name: str = Field(..., description="Bus operator")
    bus_number: str = Field(..., description="Bus registration or fleet number")
    departure_time: datetime = Field(..., description="Departure time (ISO 8601)")
    arrival_time: datetime = Field(..., description="Arrival time (ISO 8601)")
    price: Money = Field(..., description="Regular seat price")
    premium_price: Money = Field(..., description="Premium seat price")
    total_seats: int = Field(..., ge=0, description="Seats in the layout")
    is_active: bool = Field(..., description="Whether the schedule is open for sale")


class SearchSchedulesResponse(PaginatedResponse):
    """Response schema for schedule search."""

    items: list[Schedule] = Field(..., description="Found schedules")


class GetSeatMapRequest(BaseModel):
    """Request schema for a schedule's seat map."""

    schedule_id: str = Field(..., description="Schedule to render")
    session_id: str | None = Field(None, max_length=128, description="Caller's session, marks its own holds")


class SeatStatus(BaseModel):
    """One seat of the seat map."""

    seat_id: str = Field(..., description="Seat ID")
    seat_number: str = Field(..., description="Seat label, e.g. 1A")
    seat_type: str = Field(..., description="REGULAR or PREMIUM")
    price: Money = Field(..., description="Seat price")
    state: SeatState = Field(..., description="Current seat state")
    held_by_you: bool = Field(False, description="Held by the requesting session")
    hold_expires_at: datetime | None = Field(None, description="Expiry of the covering hold")


class SeatMap(BaseModel):
    """Seat map response schema."""

    schedule_id: str = Field(..., description="Schedule ID")
    seats: list[SeatStatus] = Field(..., description="Seats ordered by seat number")
    total_seats: int = Field(..., ge=0, description="Seats in the layout")
    available_seats: int = Field(..., ge=0, description="Seats neither held nor booked")
    held_seats: int = Field(..., ge=0, description="Seats under a live hold")
    booked_seats: int = Field(..., ge=0, description="Seats in a live booking")


class SessionScopedRequest(BaseModel):
    """Base for requests keyed by schedule and browser session."""

    schedule_id: str = Field(..., description="Schedule ID")
    session_id: str = Field(..., min_length=1, max_length=128, description="Opaque browser session identifier")
