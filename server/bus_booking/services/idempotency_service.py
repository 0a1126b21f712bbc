"""Replay of booking mutations retried with the same Idempotency-Key."""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.exceptions import ProblemDetailsException, ValidationError, problem_type
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 255


class IdempotencyMismatchError(ProblemDetailsException):
    """The key was already used for the same operation with a different body."""

    def __init__(self, idempotency_key: str, operation: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            detail=f"Idempotency key '{idempotency_key}' was already used for '{operation}' with a different request body",
            type_uri=problem_type("idempotency-key-mismatch"),
            extensions={
                "code": "IDEMPOTENCY_KEY_MISMATCH",
                "retryable": False,
                "idempotency_key": idempotency_key,
                "operation": operation,
            },
        )


@dataclass(frozen=True)
class CachedResponse:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] | None = None


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def request_fingerprint(request_body: dict[str, Any]) -> str:
    """SHA-256 of the body with keys sorted, so field order never matters."""
    return hashlib.sha256(_canonical_json(request_body).encode("utf-8")).hexdigest()


class IdempotencyService:
    """
    Stores the outcome of a commit or cancel under (key, operation).

    A retry with the same key and body gets the stored response back without
    touching holds, bookings or the payment gateway again.
    """

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    @staticmethod
    def validate_key(idempotency_key: str) -> str:
        """Reject blank or oversized Idempotency-Key headers."""
        key = idempotency_key.strip()
        if not key or len(key) > MAX_KEY_LENGTH:
            raise ValidationError(
                detail=f"Idempotency-Key must be between 1 and {MAX_KEY_LENGTH} characters",
                errors={"Idempotency-Key": idempotency_key[:64]}
            )
        return key

    async def lookup(self, idempotency_key: str, operation: str, request_body: dict[str, Any]) -> CachedResponse | None:
        """
        Find the live stored response for this key and operation.

        Raises:
            IdempotencyMismatchError: If the key was used with a different body
        """
        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.operation == operation,
            IdempotencyRecord.expires_at > self.clock()
        )
        record = (await self.db.execute(stmt)).scalar_one_or_none()
        if record is None:
            return None

        if record.request_body_hash != request_fingerprint(request_body):
            logger.warning(
                "Idempotency key reused with a different body",
                extra={"idempotency_key": idempotency_key, "operation": operation}
            )
            raise IdempotencyMismatchError(idempotency_key, operation)

        logger.info(
            "Replaying stored response",
            extra={
                "idempotency_key": idempotency_key,
                "operation": operation,
                "status_code": record.response_status_code
            }
        )
        return CachedResponse(
            status_code=record.response_status_code,
            body=json.loads(record.response_body),
            headers=json.loads(record.response_headers) if record.response_headers else None
        )

    async def store(
        self,
        idempotency_key: str,
        operation: str,
        request_body: dict[str, Any],
        response: CachedResponse,
        ttl_hours: int | None = None
    ) -> None:
        """
        Remember ``response`` for this key and operation.

        An expired record under the same key is replaced. When a concurrent
        request stored the key first, its record wins and this call is a no-op.
        """
        now = self.clock()
        if ttl_hours is None:
            ttl_hours = settings.idempotency_ttl_hours
        expires_at = now + timedelta(hours=ttl_hours)

        await self.db.execute(
            delete(IdempotencyRecord).where(
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.operation == operation,
                IdempotencyRecord.expires_at <= now
            )
        )
        self.db.add(IdempotencyRecord(
            idempotency_key=idempotency_key,
            operation=operation,
            request_body_hash=request_fingerprint(request_body),
            response_status_code=response.status_code,
            response_body=_canonical_json(response.body),
            response_headers=_canonical_json(response.headers) if response.headers else None,
            expires_at=expires_at
        ))

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(
                "Idempotency key stored concurrently, keeping the first response",
                extra={"idempotency_key": idempotency_key, "operation": operation}
            )
            return

        logger.debug(
            "Stored idempotent response",
            extra={
                "idempotency_key": idempotency_key,
                "operation": operation,
                "status_code": response.status_code,
                "expires_at": expires_at.isoformat()
            }
        )

    async def cleanup_expired_records(self) -> int:
        """Delete records past their TTL and return how many went."""
        result = await self.db.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= self.clock())
        )
        await self.db.commit()

        deleted_count = result.rowcount or 0
        if deleted_count:
            logger.info("Cleaned up expired idempotency records", extra={"deleted_count": deleted_count})
        return deleted_count
