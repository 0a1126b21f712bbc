"""FastAPI routers package."""

from .booking import router as booking_router
from .health import router as health_router
from .hold import router as hold_router
from .metrics import router as metrics_router
from .payment import router as payment_router
from .realtime import router as realtime_router
from .route import router as route_router
from .schedule import router as schedule_router

__all__ = [
    "booking_router",
    "health_router",
    "hold_router",
    "metrics_router",
    "payment_router",
    "realtime_router",
    "route_router",
    "schedule_router",
]
