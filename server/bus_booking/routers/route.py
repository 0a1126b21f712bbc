"""Route router for route management operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import AdminAuth
from ..core.exceptions import ProblemDetailsException
from ..schemas.route import CreateRouteRequest, Route, SearchRoutesRequest, SearchRoutesResponse
from ..services.route_service import RouteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/route", tags=["route"])


def _convert_route_to_schema(route_model) -> Route:
    """Convert route model to schema."""
    return Route(
        id=str(route_model.id),
        origin=route_model.origin,
        destination=route_model.destination,
        operator_name=route_model.operator_name,
        distance_km=route_model.distance_km,
        duration_minutes=route_model.duration_minutes
    )


@router.post("/create", response_model=Route)
async def create_route(
    request: CreateRouteRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = AdminAuth
) -> JSONResponse:
    """Create a new route. Requires the admin role."""
    route_service = RouteService(db)

    try:
        route = await route_service.create_route(request)
        response_data = _convert_route_to_schema(route)

        logger.info(
            "Route created via API",
            extra={"route_id": response_data.id, "admin": user["user_id"]}
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in route creation",
            extra={
                "origin": request.origin,
                "destination": request.destination,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/search", response_model=SearchRoutesResponse)
async def search_routes(
    request: SearchRoutesRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Search routes by origin and destination."""
    route_service = RouteService(db)

    try:
        routes, next_cursor = await route_service.search_routes(request)
        response_data = SearchRoutesResponse(
            items=[_convert_route_to_schema(route) for route in routes],
            next_cursor=next_cursor
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in route search",
            extra={"origin": request.origin, "destination": request.destination, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
