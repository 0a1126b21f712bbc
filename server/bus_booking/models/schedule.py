"""Schedule model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking
    from .hold import Hold
    from .route import Route
    from .seat import Seat


class Schedule(Base):
    """Schedule entity representing one bus departure on a route."""

    __tablename__ = "schedules"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to route
    route_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Departure details (naive UTC)
    bus_number: Mapped[str] = mapped_column(String(32), nullable=False)
    departure_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    arrival_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Price information (stored as minor units, e.g., cents)
    base_price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    premium_price_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("arrival_time > departure_time", name="ck_schedule_arrival_after_departure"),
        CheckConstraint("base_price_amount >= 0", name="ck_schedule_base_price_non_negative"),
        CheckConstraint(
            "premium_price_amount IS NULL OR premium_price_amount >= 0",
            name="ck_schedule_premium_price_non_negative"
        ),
        CheckConstraint("length(price_currency) = 3", name="ck_schedule_price_currency_length"),
    )

    # Relationships
    route: Mapped["Route"] = relationship("Route", back_populates="schedules")
    seats: Mapped[list["Seat"]] = relationship(
        "Seat",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="Seat.seat_number"
    )
    holds: Mapped[list["Hold"]] = relationship(
        "Hold",
        back_populates="schedule",
        cascade="all, delete-orphan"
    )
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="schedule",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Schedule(id={self.id}, route_id={self.route_id}, "
            f"departure_time={self.departure_time}, active={self.is_active})>"
        )
