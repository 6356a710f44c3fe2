#!/usr/bin/env python3
"""Setup script for the hotel booking API."""

import asyncio
import logging
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from booking_api.core.database import async_session_factory, close_db
from booking_api.models import Hotel, Room, User

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

server_dir = Path(__file__).parent.parent / "server"

SAMPLE_ROOMS = [
    ("101", "SINGLE", Decimal("2500.00")),
    ("102", "DOUBLE", Decimal("4500.00")),
    ("201", "DOUBLE", Decimal("4500.00")),
    ("301", "SUITE", Decimal("9000.00")),
]


def run_migrations():
    """Upgrade the database schema to the latest revision."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create a hotel with a few rooms and a guest account."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.execute(select(func.count()).select_from(Hotel))
            if existing.scalar() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            hotel = Hotel(name="Sea Pearl Beach Resort", city="Cox's Bazar")
            db.add(hotel)
            await db.flush()

            for name, room_type, price in SAMPLE_ROOMS:
                db.add(Room(hotel_id=hotel.id, name=name, type=room_type, base_price=price))
            db.add(User(name="Demo Guest", email="guest@example.com"))

            await db.commit()
            logger.info(f"Sample data created for hotel {hotel.id}")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise


async def main():
    """Main setup function."""
    logger.info("Starting hotel booking API setup...")

    # Alembic drives its own event loop for the async engine
    await asyncio.to_thread(run_migrations)

    try:
        await create_sample_data()
    finally:
        await close_db()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: uvicorn booking_api.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
