"""Lifecycle of the background workers that run beside the API."""

import asyncio
import logging
from typing import Any, Iterable

from .base import BaseWorker
from .hold_expiry_worker import HoldExpiryWorker
from .idempotency_cleanup_worker import IdempotencyCleanupWorker

logger = logging.getLogger(__name__)


def default_workers() -> list[BaseWorker]:
    """Hold expiry and idempotency cleanup, with intervals taken from settings."""
    return [HoldExpiryWorker(), IdempotencyCleanupWorker()]


class WorkerManager:
    """Starts, stops and reports on a fixed set of named workers."""

    def __init__(self, workers: Iterable[BaseWorker] | None = None):
        self.workers: dict[str, BaseWorker] = {
            worker.name: worker for worker in (default_workers() if workers is None else workers)
        }

    async def start_all(self) -> None:
        for name, worker in self.workers.items():
            try:
                await worker.start()
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {e}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers", extra={"workers": list(self.workers)})

    async def stop_all(self) -> None:
        running = [worker for worker in self.workers.values() if worker.is_running]
        results = await asyncio.gather(*(worker.stop() for worker in running), return_exceptions=True)

        for worker, result in zip(running, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {worker.name}: {result}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Raises:
            KeyError: If no worker has that name
        """
        return self.workers[name]

    def get_worker_status(self) -> dict[str, dict[str, Any]]:
        return {name: worker.status() for name, worker in self.workers.items()}


worker_manager = WorkerManager()
