"""Hold and HoldSeat model definitions."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .schedule import Schedule
    from .seat import Seat


class Hold(Base):
    """
    A time-bounded claim by one session on a set of seats of one schedule.

    A session holds at most one hold per schedule. Holds are never extended in
    place: renewal deletes the row and issues a new one.
    """

    __tablename__ = "holds"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    schedule_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Opaque browser-session identity, independent of authentication
    session_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("length(session_id) > 0", name="ck_hold_session_id_not_empty"),
        CheckConstraint("expires_at > created_at", name="ck_hold_expires_after_created"),
        UniqueConstraint("schedule_id", "session_id", name="uq_hold_schedule_session"),
    )

    schedule: Mapped["Schedule"] = relationship("Schedule", back_populates="holds")
    seats: Mapped[list["HoldSeat"]] = relationship(
        "HoldSeat",
        back_populates="hold",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    @property
    def seat_ids(self) -> list[UUID]:
        return sorted((seat.seat_id for seat in self.seats), key=str)

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

    def __repr__(self) -> str:
        return (
            f"<Hold(id={self.id}, schedule_id={self.schedule_id}, "
            f"seats={len(self.seats)}, expires_at={self.expires_at})>"
        )


class HoldSeat(Base):
    """
    One seat covered by a hold.

    The unique (schedule_id, seat_id) constraint is the storage-level
    guarantee that a seat is covered by at most one hold.
    """

    __tablename__ = "hold_seats"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    hold_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("holds.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Denormalized so the uniqueness guarantee can be expressed per schedule
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

    __table_args__ = (
        UniqueConstraint("schedule_id", "seat_id", name="uq_hold_seat_schedule_seat"),
    )

    hold: Mapped["Hold"] = relationship("Hold", back_populates="seats")
    seat: Mapped["Seat"] = relationship("Seat")

    def __repr__(self) -> str:
        return f"<HoldSeat(hold_id={self.hold_id}, seat_id={self.seat_id})>"
