"""Route model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .schedule import Schedule


class Route(Base):
    """Route entity: an operator's service between two cities."""

    __tablename__ = "routes"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Route information
    origin: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    destination: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    operator_name: Mapped[str] = mapped_column(String(255), nullable=False)
    distance_km: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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

    __table_args__ = (
        CheckConstraint("distance_km >= 0", name="ck_route_distance_non_negative"),
        CheckConstraint("duration_minutes >= 0", name="ck_route_duration_non_negative"),
        CheckConstraint("origin <> destination", name="ck_route_distinct_endpoints"),
        UniqueConstraint("origin", "destination", "operator_name", name="uq_route_origin_destination_operator"),
    )

    # Relationships
    schedules: Mapped[list["Schedule"]] = relationship(
        "Schedule",
        back_populates="route",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Route(id={self.id}, {self.origin!r} -> {self.destination!r}, "
            f"operator={self.operator_name!r})>"
        )
