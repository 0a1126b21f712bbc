"""Background worker for purging expired idempotency records."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.database import async_session_factory
from ..services.idempotency_service import IdempotencyService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class IdempotencyCleanupWorker(BaseWorker):
    """Deletes cached idempotent responses once their TTL has passed."""

    def __init__(
        self,
        interval_seconds: float | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        super().__init__(
            name="idempotency_cleanup",
            interval_seconds=(
                settings.idempotency_cleanup_interval_seconds if interval_seconds is None else interval_seconds
            )
        )
        self.session_factory = session_factory or async_session_factory

    async def process(self) -> None:
        async with self.session_factory() as db:
            try:
                deleted = await IdempotencyService(db).cleanup_expired_records()
            except Exception:
                await db.rollback()
                raise

        if deleted:
            logger.info(
                f"Purged {deleted} idempotency records",
                extra={"deleted_count": deleted, "worker": self.name}
            )
