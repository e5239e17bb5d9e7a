#!/usr/bin/env python3
"""Migrate the database and load a sample hotel catalogue."""

import asyncio
import logging
from decimal import Decimal
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from hotel_booking.core.database import async_session_factory, close_db
from hotel_booking.models import CancellationPolicy, CancellationPolicyTier, RoomType

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

server_dir = Path(__file__).parent.parent / "server"

SAMPLE_ROOM_TYPES = [
    ("Standard Double", 12, Decimal("129.00")),
    ("Deluxe King", 8, Decimal("189.00")),
    ("Junior Suite", 3, Decimal("320.00")),
]


def migrate_database():
    """Bring the schema up to the latest revision."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create a default cancellation policy and a few room types."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.scalar(select(func.count()).select_from(RoomType))
            if existing:
                logger.info("Sample data already exists, skipping...")
                return

            policy = CancellationPolicy(
                name="Flexible",
                description="Full refund up to a week out, half refund up to three days out",
                is_refundable=True,
                is_default=True,
                tiers=[
                    CancellationPolicyTier(days_before_check_in=7, refund_percentage=100),
                    CancellationPolicyTier(days_before_check_in=3, refund_percentage=50),
                ],
            )
            db.add(policy)
            await db.flush()

            for name, units, rate in SAMPLE_ROOM_TYPES:
                db.add(RoomType(
                    name=name,
                    total_units=units,
                    base_rate=rate,
                    cancellation_policy_id=policy.id,
                ))

            await db.commit()
            logger.info("Sample data created successfully!")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise


async def seed():
    try:
        await create_sample_data()
    finally:
        await close_db()


def main():
    logger.info("Starting hotel booking API setup...")

    migrate_database()
    asyncio.run(seed())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn hotel_booking.main:app --reload")


if __name__ == "__main__":
    main()
