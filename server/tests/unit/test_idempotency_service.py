"""Tests for the idempotency service."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from bus_booking.core.exceptions import ValidationError
from bus_booking.models import IdempotencyRecord
from bus_booking.services.idempotency_service import (
    CachedResponse,
    IdempotencyMismatchError,
    IdempotencyService,
    request_fingerprint,
)

BODY = {"booking_id": "b-1"}


@pytest.mark.asyncio
async def test_stored_response_is_replayed(test_session, clock):
    service = IdempotencyService(test_session, clock=clock)
    assert await service.lookup("key-1", "booking/cancel", BODY) is None

    await service.store("key-1", "booking/cancel", BODY, CachedResponse(200, {"id": "b-1", "status": "CANCELED"}))

    cached = await service.lookup("key-1", "booking/cancel", {"booking_id": "b-1"})
    assert cached == CachedResponse(200, {"id": "b-1", "status": "CANCELED"}, None)


@pytest.mark.asyncio
async def test_error_headers_are_kept(test_session, clock):
    service = IdempotencyService(test_session, clock=clock)
    problem = {"status": 402, "code": "PAYMENT_NOT_CONFIRMED"}

    await service.store("key-1", "booking/commit", BODY, CachedResponse(402, problem, {"X-Reason": "declined"}))

    cached = await service.lookup("key-1", "booking/commit", BODY)
    assert cached.status_code == 402
    assert cached.headers == {"X-Reason": "declined"}


@pytest.mark.asyncio
async def test_key_is_scoped_by_method(test_session, clock):
    service = IdempotencyService(test_session, clock=clock)
    await service.store("key-1", "booking/cancel", BODY, CachedResponse(200, {"ok": True}))

    assert await service.lookup("key-1", "booking/commit", BODY) is None


@pytest.mark.asyncio
async def test_reused_key_with_other_body(test_session, clock):
    service = IdempotencyService(test_session, clock=clock)
    await service.store("key-1", "booking/cancel", BODY, CachedResponse(200, {"ok": True}))

    with pytest.raises(IdempotencyMismatchError) as exc_info:
        await service.lookup("key-1", "booking/cancel", {"booking_id": "b-2"})

    assert exc_info.value.status_code == 422


@pytest.mark.asyncio
async def test_second_store_keeps_first_response(test_session, clock):
    service = IdempotencyService(test_session, clock=clock)
    await service.store("key-1", "booking/cancel", BODY, CachedResponse(200, {"attempt": 1}))
    await service.store("key-1", "booking/cancel", BODY, CachedResponse(200, {"attempt": 2}))

    cached = await service.lookup("key-1", "booking/cancel", BODY)
    assert cached.body == {"attempt": 1}


@pytest.mark.asyncio
async def test_expired_key_can_be_reused(test_session, clock):
    service = IdempotencyService(test_session, clock=clock)
    await service.store("key-1", "booking/cancel", BODY, CachedResponse(200, {"attempt": 1}), ttl_hours=1)
    clock.advance(timedelta(hours=2).total_seconds())

    assert await service.lookup("key-1", "booking/cancel", {"booking_id": "other"}) is None
    await service.store("key-1", "booking/cancel", {"booking_id": "other"}, CachedResponse(200, {"attempt": 2}))

    cached = await service.lookup("key-1", "booking/cancel", {"booking_id": "other"})
    assert cached.body == {"attempt": 2}
    count = (await test_session.execute(select(func.count(IdempotencyRecord.id)))).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_expired_records_are_ignored_and_purged(test_session, clock):
    service = IdempotencyService(test_session, clock=clock)
    await service.store("key-1", "booking/cancel", BODY, CachedResponse(200, {"ok": True}), ttl_hours=1)
    clock.advance(timedelta(hours=2).total_seconds())

    assert await service.lookup("key-1", "booking/cancel", BODY) is None
    assert await service.cleanup_expired_records() == 1
    assert await service.cleanup_expired_records() == 0


def test_fingerprint_ignores_key_order():
    assert request_fingerprint({"a": 1, "b": [1, 2]}) == request_fingerprint({"b": [1, 2], "a": 1})
    assert request_fingerprint({"a": 1}) != request_fingerprint({"a": 2})


@pytest.mark.parametrize("key", ["", "   ", "k" * 256])
def test_invalid_keys(key):
    with pytest.raises(ValidationError):
        IdempotencyService.validate_key(key)


def test_key_is_trimmed():
    assert IdempotencyService.validate_key("  key-1 ") == "key-1"
