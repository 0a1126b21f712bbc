"""Wall-clock helpers.

All persisted timestamps are naive UTC. Services take a ``Clock`` so that
hold expiry can be exercised in tests without sleeping.
"""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_z(value: datetime) -> str:
    """Render a naive UTC datetime as an ISO 8601 string with a Z suffix."""
    return value.isoformat() + "Z"
