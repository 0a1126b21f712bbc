#!/usr/bin/env python3
"""Setup script for the bus booking API."""

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from bus_booking.core.clock import utcnow
from bus_booking.core.database import async_session_factory, close_db
from bus_booking.models import Route
from bus_booking.schemas import CreateRouteRequest, CreateScheduleRequest, Money, SeatLayout
from bus_booking.services import RouteService, ScheduleService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_ROUTES = [
    ("Kampala", "Gulu", "Gaaga Coaches", 340, 330),
    ("Kampala", "Mbarara", "Link Bus", 270, 300),
    ("Nairobi", "Mombasa", "Coast Express", 480, 480),
]


def run_migrations() -> None:
    """Apply Alembic migrations up to head."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Create a few routes with a week of daily schedules each."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing_routes = await db.scalar(select(func.count()).select_from(Route))
        if existing_routes:
            logger.info("Sample data already exists, skipping...")
            return

        route_service = RouteService(db)
        schedule_service = ScheduleService(db)
        first_departure = (utcnow() + timedelta(days=1)).replace(hour=7, minute=0, second=0, microsecond=0)

        for origin, destination, operator, distance_km, duration_minutes in SAMPLE_ROUTES:
            route = await route_service.create_route(CreateRouteRequest(
                origin=origin,
                destination=destination,
                operator_name=operator,
                distance_km=distance_km,
                duration_minutes=duration_minutes,
            ))
            for day in range(7):
                departure_time = first_departure + timedelta(days=day)
                await schedule_service.create_schedule(CreateScheduleRequest(
                    route_id=str(route.id),
                    bus_number=f"{operator[:3].upper()}-{100 + day}",
                    departure_time=departure_time,
                    arrival_time=departure_time + timedelta(minutes=duration_minutes),
                    price=Money(amount=distance_km * 100, currency="USD"),
                    premium_price=Money(amount=distance_km * 150, currency="USD"),
                    layout=SeatLayout(rows=12, columns=4, premium_rows=2),
                ))
            logger.info(f"Created route {origin} -> {destination} with 7 schedules")

    logger.info("Sample data created successfully!")


async def main():
    """Main setup function."""
    logger.info("Starting bus booking API setup...")

    # Alembic drives its own event loop
    await asyncio.to_thread(run_migrations)

    try:
        await create_sample_data()
    finally:
        await close_db()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn bus_booking.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
