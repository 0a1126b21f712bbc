"""Route service for business logic operations."""

import logging
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..models.route import Route
from ..schemas.route import CreateRouteRequest, SearchRoutesRequest

logger = logging.getLogger(__name__)


def _normalize_city(name: str) -> str:
    return " ".join(name.split()).title()


class RouteService:
    """Service for route-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_route(self, request: CreateRouteRequest) -> Route:
        """
        Create a new route.

        Args:
            request: Route creation request

        Returns:
            Created route entity

        Raises:
            ConflictError: If the operator already runs this origin/destination pair
        """
        origin = _normalize_city(request.origin)
        destination = _normalize_city(request.destination)
        operator_name = request.operator_name.strip()

        if origin == destination:
            raise ValidationError(detail="Origin and destination must differ")

        existing_route = await self.get_route_by_endpoints(origin, destination, operator_name)
        if existing_route:
            logger.warning(
                "Route creation failed - route already exists",
                extra={
                    "origin": origin,
                    "destination": destination,
                    "operator_name": operator_name,
                    "existing_route_id": str(existing_route.id)
                }
            )
            raise ConflictError(
                detail=f"{operator_name} already runs {origin} to {destination}",
                conflicting_resource={"id": str(existing_route.id)}
            )

        route = Route(
            origin=origin,
            destination=destination,
            operator_name=operator_name,
            distance_km=request.distance_km,
            duration_minutes=request.duration_minutes
        )

        try:
            self.db.add(route)
            await self.db.commit()
            await self.db.refresh(route)
        except IntegrityError as e:
            # Lost a race with a concurrent create of the same route
            await self.db.rollback()
            logger.error(
                "Route creation failed due to integrity constraint",
                extra={"origin": origin, "destination": destination, "error": str(e)}
            )
            raise ConflictError(detail="Route creation failed due to constraint violation") from e

        logger.info(
            "Route created successfully",
            extra={
                "route_id": str(route.id),
                "origin": route.origin,
                "destination": route.destination,
                "operator_name": route.operator_name
            }
        )
        return route

    async def search_routes(self, request: SearchRoutesRequest) -> tuple[list[Route], str | None]:
        """Search routes by endpoints, paginated by ID cursor."""
        stmt = select(Route)

        conditions = []
        if request.origin:
            conditions.append(func.lower(Route.origin) == _normalize_city(request.origin).lower())
        if request.destination:
            conditions.append(func.lower(Route.destination) == _normalize_city(request.destination).lower())
        if request.cursor:
            try:
                conditions.append(Route.id > UUID(request.cursor))
            except ValueError:
                logger.warning("Invalid cursor provided in route search", extra={"cursor": request.cursor})

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(Route.id).limit(request.limit + 1)
        result = await self.db.execute(stmt)
        routes = list(result.scalars())

        next_cursor = None
        if len(routes) > request.limit:
            routes = routes[:request.limit]
            next_cursor = str(routes[-1].id)

        return routes, next_cursor

    async def get_route_by_id(self, route_id: UUID) -> Route | None:
        stmt = select(Route).where(Route.id == route_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_route_by_endpoints(self, origin: str, destination: str, operator_name: str) -> Route | None:
        stmt = select(Route).where(
            Route.origin == origin,
            Route.destination == destination,
            Route.operator_name == operator_name
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_route_by_id_or_raise(self, route_id: UUID) -> Route:
        """
        Get route by ID or raise NotFoundError.

        Raises:
            NotFoundError: If route not found
        """
        route = await self.get_route_by_id(route_id)
        if not route:
            logger.warning("Route not found", extra={"route_id": str(route_id)})
            raise NotFoundError(resource_type="route", resource_id=str(route_id))
        return route
