"""Models module exporting all database models."""

from .booking import Booking, BookingSeat, BookingStatus
from .hold import Hold, HoldSeat
from .idempotency import IdempotencyRecord
from .route import Route
from .schedule import Schedule
from .seat import Seat, SeatType

__all__ = [
    # Catalogue entities
    "Route",
    "Schedule",
    "Seat",
    "SeatType",

    # Reservation entities
    "Hold",
    "HoldSeat",
    "Booking",
    "BookingSeat",
    "BookingStatus",

    # Idempotency entity
    "IdempotencyRecord",
]
