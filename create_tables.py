"""
Script to create all database tables.

This script creates all tables defined in the models.
Run this after starting PostgreSQL with Docker.
"""
import asyncio
from paysettle.database import engine
from paysettle.models.base import Base
# Import all models to register them with Base
from paysettle.models.user import User, Space, SpaceProduct, Cohort, Enrollment
from paysettle.models.producer import Product, PlatformSettings, ProducerSettings, ProducerBalance
from paysettle.models.ticket_batch import TicketBatch
from paysettle.models.order import Order
from paysettle.models.transaction_event import TransactionEvent
from paysettle.models.webhook import WebhookEndpoint, WebhookDeliveryJob, WebhookEventLog
from paysettle.models.notification import Notification, NotificationPreference


async def create_all_tables():
    """Create all tables in the database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("All tables created successfully!")


async def drop_all_tables():
    """Drop all tables in the database (for testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    print("All tables dropped!")


async def main():
    """Main entry point."""
    print("Creating database tables...")
    await create_all_tables()
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
