"""Booking persistence: inserting, reading and cancelling bookings."""

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.exceptions import ConflictError, NotFoundError, SeatsUnavailableError
from ..models.booking import Booking, BookingSeat, BookingStatus
from ..models.schedule import Schedule
from ..models.seat import Seat

logger = logging.getLogger(__name__)

BOOKING_CODE_PREFIX = "BT"


@dataclass
class BookingDraft:
    """Everything a booking needs besides its seats."""

    session_id: str
    passenger_name: str
    passenger_email: str
    passenger_phone: str
    payment_reference: str
    seat_passenger_names: dict[UUID, str] = field(default_factory=dict)


class BookingService:
    """
    Persistence operations for bookings.

    Methods never commit: they run inside the caller's transaction, which the
    seat reservation coordinator owns.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _generate_booking_code(self, length: int = 8) -> str:
        """Generate a random booking confirmation code (PNR)."""
        alphabet = string.ascii_uppercase + string.digits
        return BOOKING_CODE_PREFIX + ''.join(secrets.choice(alphabet) for _ in range(length))

    async def find_booked_seats(self, schedule_id: UUID, seat_ids: list[UUID]) -> set[UUID]:
        """Return the subset of ``seat_ids`` that belong to a live booking."""
        stmt = select(BookingSeat.seat_id).where(
            BookingSeat.schedule_id == schedule_id,
            BookingSeat.seat_id.in_(seat_ids),
            BookingSeat.released_at.is_(None)
        )
        result = await self.db.execute(stmt)
        return set(result.scalars())

    async def insert_booking_if_seats_free(
        self,
        schedule: Schedule,
        seat_ids: list[UUID],
        draft: BookingDraft,
        now: datetime | None = None
    ) -> Booking:
        """
        Insert a booking for ``seat_ids`` unless any of them is already booked.

        Args:
            schedule: Schedule the seats belong to
            seat_ids: Seats to book
            draft: Passenger and payment details
            now: Booking creation time, defaults to the current time

        Returns:
            The flushed, uncommitted booking

        Raises:
            SeatsUnavailableError: If a seat is in a live booking
            ConflictError: If the payment reference was already used
        """
        booked = await self.find_booked_seats(schedule.id, seat_ids)
        if booked:
            raise SeatsUnavailableError(
                schedule_id=str(schedule.id),
                unavailable_seats=[
                    {"seat_id": str(seat_id), "state": "booked", "held_by": None}
                    for seat_id in seat_ids if seat_id in booked
                ]
            )

        existing = await self.get_booking_by_payment_reference(draft.payment_reference)
        if existing:
            raise ConflictError(
                detail=f"Payment {draft.payment_reference} was already used for booking {existing.code}",
                conflicting_resource={"booking_id": str(existing.id)}
            )

        stmt = select(Seat).where(Seat.schedule_id == schedule.id, Seat.id.in_(seat_ids))
        seats = {seat.id: seat for seat in (await self.db.execute(stmt)).scalars()}

        booking_code = self._generate_booking_code()
        while await self.get_booking_by_code(booking_code):
            booking_code = self._generate_booking_code()

        booking = Booking(
            schedule_id=schedule.id,
            code=booking_code,
            session_id=draft.session_id,
            passenger_name=draft.passenger_name,
            passenger_email=draft.passenger_email,
            passenger_phone=draft.passenger_phone,
            total_amount=sum(seats[seat_id].price_amount for seat_id in seat_ids),
            currency=schedule.price_currency,
            payment_reference=draft.payment_reference,
            status=BookingStatus.CONFIRMED.value,
            created_at=now or utcnow()
        )
        booking.seats = [
            BookingSeat(
                schedule_id=schedule.id,
                seat_id=seat_id,
                price_amount=seats[seat_id].price_amount,
                passenger_name=draft.seat_passenger_names.get(seat_id)
            )
            for seat_id in seat_ids
        ]

        self.db.add(booking)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # A concurrent writer booked one of the seats first
            logger.warning(
                "Booking insert rejected by seat uniqueness constraint",
                extra={"schedule_id": str(schedule.id), "error": str(e)}
            )
            raise SeatsUnavailableError(
                schedule_id=str(schedule.id),
                unavailable_seats=[
                    {"seat_id": str(seat_id), "state": "booked", "held_by": None}
                    for seat_id in seat_ids
                ]
            ) from e

        logger.info(
            "Booking inserted",
            extra={
                "booking_id": str(booking.id),
                "booking_code": booking.code,
                "schedule_id": str(schedule.id),
                "seats": len(seat_ids),
                "total_amount": booking.total_amount
            }
        )
        return booking

    async def cancel_booking(self, booking: Booking, now: datetime) -> list[UUID]:
        """
        Mark a booking cancelled and release its seats.

        Returns:
            Seat IDs freed by this call, empty if the booking was already cancelled
        """
        if booking.status == BookingStatus.CANCELED.value:
            return []

        booking.status = BookingStatus.CANCELED.value
        booking.cancelled_at = now
        released = []
        for booking_seat in booking.seats:
            if booking_seat.released_at is None:
                booking_seat.released_at = now
                released.append(booking_seat.seat_id)

        await self.db.flush()

        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": str(booking.id),
                "booking_code": booking.code,
                "released_seats": len(released)
            }
        )
        return released

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking(self, booking_id: UUID) -> Booking:
        """
        Get booking by ID or raise NotFoundError.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self.get_booking_by_id(booking_id)
        if not booking:
            logger.warning("Booking not found", extra={"booking_id": str(booking_id)})
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def get_booking_by_code(self, code: str) -> Booking | None:
        """Get booking by confirmation code."""
        stmt = select(Booking).where(Booking.code == code.upper())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_booking_by_payment_reference(self, payment_reference: str) -> Booking | None:
        stmt = select(Booking).where(Booking.payment_reference == payment_reference)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_seat_numbers(self, seat_ids: list[UUID]) -> dict[UUID, str]:
        if not seat_ids:
            return {}
        stmt = select(Seat.id, Seat.seat_number).where(Seat.id.in_(seat_ids))
        return {seat_id: number for seat_id, number in (await self.db.execute(stmt)).all()}

    async def price_seats(self, schedule_id: UUID, seat_ids: list[UUID]) -> int:
        """Total price of the given seats in minor units."""
        stmt = select(Seat.price_amount).where(Seat.schedule_id == schedule_id, Seat.id.in_(seat_ids))
        return sum((await self.db.execute(stmt)).scalars())
