"""Liveness payloads."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class HealthResponse(BaseModel):
    """Result of ``POST /v1/health/ping``."""

    status: HealthStatus = Field(..., description="HEALTHY unless a background worker has stopped")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601)")
    version: str = Field(..., description="API version")
    workers: dict[str, bool] = Field(default_factory=dict, description="Whether each background worker is running")
    realtime_subscribers: int = Field(0, ge=0, description="Open real-time sockets in this process")
