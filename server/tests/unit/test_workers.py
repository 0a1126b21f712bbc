"""Tests for background workers."""

import asyncio

import pytest
from sqlalchemy import func, select

from bus_booking.models import Hold, IdempotencyRecord
from bus_booking.services.idempotency_service import CachedResponse, IdempotencyService
from bus_booking.workers.base import BaseWorker
from bus_booking.workers.hold_expiry_worker import HoldExpiryWorker
from bus_booking.workers.idempotency_cleanup_worker import IdempotencyCleanupWorker
from bus_booking.workers.manager import WorkerManager


class CountingWorker(BaseWorker):

    def __init__(self, fail_first: bool = False):
        super().__init__(name="counting", interval_seconds=0.01)
        self.calls = 0
        self.fail_first = fail_first

    async def process(self) -> None:
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise RuntimeError("transient failure")


@pytest.mark.asyncio
async def test_worker_loop_survives_failures():
    worker = CountingWorker(fail_first=True)

    await worker.start()
    await asyncio.sleep(0.1)
    await worker.stop()

    assert worker.calls >= 2
    assert worker.failures == 1
    assert worker.is_running is False
    assert worker.status()["iterations"] == worker.calls


@pytest.mark.asyncio
async def test_hold_expiry_worker_sweeps(session_factory, test_session, coordinator, schedule, clock, events, locks, subscriber_factory):
    watcher = subscriber_factory()
    events.join(watcher, schedule.id)
    await coordinator.attempt_hold(schedule.id, schedule.seat_ids[:2], "session-a")
    clock.advance(301)

    worker = HoldExpiryWorker(
        interval_seconds=1,
        session_factory=session_factory,
        events=events,
        locks=locks,
        clock=clock,
    )
    await worker.run_once()

    assert worker.last_removed == 1
    remaining = (await test_session.execute(select(func.count(Hold.id)))).scalar_one()
    assert remaining == 0
    assert watcher.of_type("seats-unlocked")[-1]["reason"] == "expired"


@pytest.mark.asyncio
async def test_idempotency_cleanup_worker(session_factory, test_session):
    service = IdempotencyService(test_session)
    await service.store("key-1", "booking/cancel", {"a": 1}, CachedResponse(200, {"ok": True}), ttl_hours=-1)

    worker = IdempotencyCleanupWorker(interval_seconds=1, session_factory=session_factory)
    await worker.run_once()

    remaining = (await test_session.execute(select(func.count(IdempotencyRecord.id)))).scalar_one()
    assert remaining == 0


@pytest.mark.asyncio
async def test_worker_manager_reports_status():
    manager = WorkerManager([CountingWorker()])

    await manager.start_all()
    await asyncio.sleep(0.05)
    running = manager.get_worker_status()
    await manager.stop_all()

    assert running["counting"]["running"] is True
    assert manager.get_worker_status()["counting"]["running"] is False
    assert manager.get_worker("counting").calls >= 1


def test_default_workers_are_registered():
    manager = WorkerManager()

    assert set(manager.workers) == {"hold_expiry", "idempotency_cleanup"}
