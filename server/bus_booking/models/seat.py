"""Seat model definition."""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .schedule import Schedule


class SeatType(str, Enum):
    """Seat type enumeration."""
    REGULAR = "REGULAR"
    PREMIUM = "PREMIUM"


class Seat(Base):
    """A position in a schedule's seat layout."""

    __tablename__ = "seats"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    schedule_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    seat_number: Mapped[str] = mapped_column(String(8), nullable=False)
    seat_type: Mapped[SeatType] = mapped_column(String(16), nullable=False, default=SeatType.REGULAR)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("price_amount >= 0", name="ck_seat_price_non_negative"),
        UniqueConstraint("schedule_id", "seat_number", name="uq_seat_schedule_number"),
    )

    schedule: Mapped["Schedule"] = relationship("Schedule", back_populates="seats")

    def __repr__(self) -> str:
        return f"<Seat(id={self.id}, schedule_id={self.schedule_id}, number={self.seat_number!r})>"
