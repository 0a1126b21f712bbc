"""Route-related Pydantic schemas."""

from pydantic import BaseModel, Field

from .common import PaginatedResponse


class CreateRouteRequest(BaseModel):
    """Request schema for creating a route."""

    origin: str = Field(..., min_length=1, max_length=100, description="Departure city")
    destination: str = Field(..., min_length=1, max_length=100, description="Arrival city")
    operator_name: str = Field(..., min_length=1, max_length=255, description="Bus operator")
    distance_km: int = Field(..., ge=1, le=10000, description="Route distance in kilometres")
    duration_minutes: int = Field(..., ge=1, le=7 * 24 * 60, description="Typical journey duration")


class SearchRoutesRequest(BaseModel):
    """Request schema for searching routes."""

    origin: str | None = Field(None, max_length=100, description="Filter by departure city")
    destination: str | None = Field(None, max_length=100, description="Filter by arrival city")
    cursor: str | None = Field(None, description="Pagination cursor")
    limit: int = Field(20, ge=1, le=100, description="Results per page")


class Route(BaseModel):
    """Route response schema."""

    id: str = Field(..., description="Unique route ID")
    origin: str = Field(..., description="Departure city")
    destination: str = Field(..., description="Arrival city")
    operator_name: str = Field(..., description="Bus operator")
    distance_km: int = Field(..., description="Route distance in kilometres")
    duration_minutes: int = Field(..., description="Typical journey duration")

    class Config:
        from_attributes = True


class SearchRoutesResponse(PaginatedResponse):
    """Response schema for route search."""

    items: list[Route] = Field(..., description="Found routes")
