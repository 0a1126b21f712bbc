"""Health check router."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.clock import Clock
from ..core.dependencies import get_clock, get_seat_events
from ..core.observability import API_VERSION
from ..schemas.health import HealthResponse, HealthStatus
from ..services.seat_events import SeatEventBroadcaster
from ..workers.manager import worker_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping(
    clock: Clock = Depends(get_clock),
    events: SeatEventBroadcaster = Depends(get_seat_events)
) -> JSONResponse:
    """
    Report liveness of this process.

    The service is degraded, not down, when a worker has stopped: holds are
    still swept lazily by the next request on their schedule.
    """
    workers = {name: status["running"] for name, status in worker_manager.get_worker_status().items()}
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY if all(workers.values()) else HealthStatus.DEGRADED,
        timestamp=clock(),
        version=API_VERSION,
        workers=workers,
        realtime_subscribers=events.connected_count()
    )

    logger.debug("Health check requested", extra={"status": response_data.status.value})

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
