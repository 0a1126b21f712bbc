"""Service layer package."""

from .booking_service import BookingDraft, BookingService
from .idempotency_service import IdempotencyService
from .payment_gateway import MockPaymentGateway, PaymentConfirmation, PaymentGateway
from .route_service import RouteService
from .schedule_service import ScheduleService
from .seat_events import SeatEventBroadcaster
from .seat_reservation import ScheduleLockRegistry, SeatReservationCoordinator

__all__ = [
    "BookingDraft",
    "BookingService",
    "IdempotencyService",
    "MockPaymentGateway",
    "PaymentConfirmation",
    "PaymentGateway",
    "RouteService",
    "ScheduleLockRegistry",
    "ScheduleService",
    "SeatEventBroadcaster",
    "SeatReservationCoordinator",
]
