"""Background worker for expiring seat holds."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.database import async_session_factory
from ..services.seat_events import SeatEventBroadcaster
from ..services.seat_reservation import ScheduleLockRegistry, SeatReservationCoordinator
from .base import BaseWorker

logger = logging.getLogger(__name__)


class HoldExpiryWorker(BaseWorker):
    """
    Background worker that removes holds past their expiry.

    Each iteration runs the coordinator's sweep, which frees the seats under
    the schedule lock and announces them as unlocked.
    """

    def __init__(
        self,
        interval_seconds: float | None = None,
        batch_size: int | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        events: SeatEventBroadcaster | None = None,
        locks: ScheduleLockRegistry | None = None,
        clock: Clock = utcnow,
    ):
        super().__init__(
            name="hold_expiry",
            interval_seconds=(
                settings.hold_sweep_interval_seconds if interval_seconds is None else interval_seconds
            )
        )
        self.batch_size = settings.hold_sweep_batch_size if batch_size is None else batch_size
        self.session_factory = session_factory or async_session_factory
        self.events = events
        self.locks = locks
        self.clock = clock
        self.last_removed = 0

    async def process(self) -> None:
        """Sweep expired holds."""
        async with self.session_factory() as db:
            coordinator = SeatReservationCoordinator(
                db, events=self.events, locks=self.locks, clock=self.clock
            )
            self.last_removed = await coordinator.sweep_expired(self.batch_size)

        if self.last_removed > 0:
            logger.info(
                f"Expired {self.last_removed} holds",
                extra={"expired_count": self.last_removed, "worker": self.name}
            )
