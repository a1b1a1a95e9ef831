"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Outbound HTTP goes through httpx.MockTransport.
"""
import uuid

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from paysettle.config import settings
from paysettle.models.base import Base
# Import all models to register them with Base
from paysettle.models.user import User, UserRole, Space, SpaceProduct, Cohort, Enrollment
from paysettle.models.producer import Product, PlatformSettings, ProducerSettings, ProducerBalance
from paysettle.models.ticket_batch import TicketBatch
from paysettle.models.order import Order, PaymentMethod
from paysettle.models.transaction_event import TransactionEvent
from paysettle.models.webhook import WebhookEndpoint, WebhookDeliveryJob, WebhookEventLog
from paysettle.models.notification import Notification, NotificationPreference
from paysettle.services.gateway_normalizer import GatewaySnapshot


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def snapshot():
    """Gateway snapshot built from the default settings."""
    return GatewaySnapshot.from_settings(settings.PAYMENT_GATEWAYS)


@pytest.fixture
async def producer(db):
    user = User(email=f"producer-{uuid.uuid4().hex[:8]}@example.com", name="Producer", role=UserRole.PRODUCER)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def product(db, producer):
    item = Product(producer_id=producer.id, name="Online course")
    db.add(item)
    await db.commit()
    return item


@pytest.fixture
def make_order(db, product):
    """Factory for pending orders; keyword arguments override the defaults."""
    async def _make(**overrides) -> Order:
        values = dict(
            product_id=product.id,
            buyer_email="buyer@example.com",
            gateway_identifier="asaas",
            gateway_transaction_id=f"pay_{uuid.uuid4().hex[:12]}",
            payment_method=PaymentMethod.PIX,
            amount_total_cents=10000,
            original_product_price_cents=10000,
            installments_chosen=1,
        )
        values.update(overrides)
        order = Order(**values)
        db.add(order)
        await db.commit()
        await db.refresh(order)
        return order
    return _make


@pytest.fixture
def make_endpoint(db, producer):
    """Factory for webhook endpoints owned by the producer fixture."""
    async def _make(**overrides) -> WebhookEndpoint:
        values = dict(
            producer_id=producer.id,
            name="Integration",
            url="https://hooks.example.com/paysettle",
            secret="whsec_test",
            events=["purchase_approved"],
        )
        values.update(overrides)
        endpoint = WebhookEndpoint(**values)
        db.add(endpoint)
        await db.commit()
        await db.refresh(endpoint)
        return endpoint
    return _make
