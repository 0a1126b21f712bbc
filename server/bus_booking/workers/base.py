"""Periodic background workers."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    A task that calls ``process`` every ``interval_seconds`` until stopped.

    A failing iteration is logged and counted; the loop keeps going and the
    next iteration starts one full interval later.
    """

    def __init__(self, name: str, interval_seconds: float = 60):
        self.name = name
        self.interval_seconds = interval_seconds
        self.iterations = 0
        self.failures = 0
        self.last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @abstractmethod
    async def process(self) -> None:
        """Do one unit of background work."""

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "iterations": self.iterations,
            "failures": self.failures,
            "last_error": self.last_error,
        }

    async def start(self) -> None:
        if self.is_running:
            logger.warning(f"{self.name} worker is already running")
            return

        self._task = asyncio.create_task(self._run(), name=f"worker:{self.name}")
        logger.info(f"{self.name} worker started with {self.interval_seconds}s interval")

    async def stop(self) -> None:
        """Cancel the loop and wait for the current iteration to unwind."""
        if not self.is_running:
            logger.warning(f"{self.name} worker is not running")
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.debug(f"{self.name} worker task cancelled")
        self._task = None

        logger.info(f"{self.name} worker stopped")

    async def run_once(self) -> bool:
        """
        Run a single iteration outside the loop.

        Returns:
            True if the iteration succeeded
        """
        started = time.monotonic()
        self.iterations += 1
        try:
            await self.process()
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.error(
                f"{self.name} worker error: {e}",
                exc_info=True,
                extra={"worker": self.name, "failures": self.failures}
            )
            return False

        self.last_error = None
        logger.debug(
            f"{self.name} worker iteration completed",
            extra={"worker": self.name, "duration_seconds": time.monotonic() - started}
        )
        return True

    async def _run(self) -> None:
        while True:
            started = time.monotonic()
            succeeded = await self.run_once()

            if succeeded:
                await asyncio.sleep(max(0.0, self.interval_seconds - (time.monotonic() - started)))
            else:
                await asyncio.sleep(self.interval_seconds)
