"""Background workers for the bus booking service."""

from .hold_expiry_worker import HoldExpiryWorker
from .idempotency_cleanup_worker import IdempotencyCleanupWorker

__all__ = ["HoldExpiryWorker", "IdempotencyCleanupWorker"]
