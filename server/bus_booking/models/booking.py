"""Booking and BookingSeat model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .schedule import Schedule
    from .seat import Seat


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    CONFIRMED = "CONFIRMED"
    CANCELED = "CANCELED"


class Booking(Base):
    """Booking entity representing a paid, committed seat reservation."""

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    schedule_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Passenger name record shown on the ticket
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    session_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Lead passenger contact
    passenger_name: Mapped[str] = mapped_column(String(255), nullable=False)
    passenger_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    passenger_phone: Mapped[str] = mapped_column(String(32), nullable=False)

    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.CONFIRMED,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("length(code) > 0", name="ck_booking_code_not_empty"),
        CheckConstraint("length(currency) = 3", name="ck_booking_currency_length"),
    )

    schedule: Mapped["Schedule"] = relationship("Schedule", back_populates="bookings")
    seats: Mapped[list["BookingSeat"]] = relationship(
        "BookingSeat",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    @property
    def seat_ids(self) -> list[UUID]:
        return sorted((seat.seat_id for seat in self.seats), key=str)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code='{self.code}', schedule_id={self.schedule_id}, "
            f"seats={len(self.seats)}, status={self.status})>"
        )


class BookingSeat(Base):
    """
    One seat of a booking.

    ``released_at`` is set when the booking is cancelled. The partial unique
    index keeps a seat in at most one live booking per schedule.
    """

    __tablename__ = "booking_seats"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    schedule_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False
    )

    seat_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("seats.id", ondelete="CASCADE"),
        nullable=False
    )

    price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    passenger_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("price_amount >= 0", name="ck_booking_seat_price_non_negative"),
        Index(
            "uq_booking_seat_live",
            "schedule_id",
            "seat_id",
            unique=True,
            postgresql_where=text("released_at IS NULL"),
            sqlite_where=text("released_at IS NULL"),
        ),
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="seats")
    seat: Mapped["Seat"] = relationship("Seat")

    def __repr__(self) -> str:
        return (
            f"<BookingSeat(booking_id={self.booking_id}, seat_id={self.seat_id}, "
            f"released={self.released_at is not None})>"
        )
