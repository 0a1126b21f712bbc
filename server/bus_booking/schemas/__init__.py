"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .common import *  # noqa: F403
from .events import *  # noqa: F403
from .health import *  # noqa: F403
from .hold import *  # noqa: F403
from .payment import *  # noqa: F403
from .route import *  # noqa: F403
from .schedule import *  # noqa: F403
