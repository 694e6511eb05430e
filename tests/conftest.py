"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from loop_razorpay.gateway.base import GatewayCredentials
from loop_razorpay.gateway.mock import MockGateway
from loop_razorpay.models.records import Base, Merchant, Order, ProcessorConfig

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "whsec_test"
FIXED_NOW = datetime(2024, 11, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def credentials():
    return GatewayCredentials(key_id="rzp_test_key", key_secret=KEY_SECRET, webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def gateway():
    return MockGateway(failure_rate=0.0, latency_ms=0)


@pytest.fixture
def gateway_factory(gateway):
    """Factory that always hands out the same in-memory gateway."""
    built = []

    def factory(creds: GatewayCredentials):
        built.append(creds)
        return gateway

    factory.built = built
    return factory


@pytest_asyncio.fixture
async def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded_session(db_session: AsyncSession):
    """Database session pre-loaded with merchants, configs and orders."""
    db_session.add_all([
        Merchant(id="MER-001", name="Chai Point", webhook_url="https://merchant.test/hooks", webhook_secret=WEBHOOK_SECRET),
        Merchant(id="MER-002", name="Book House", webhook_url="https://books.test/hooks", webhook_secret=None),
        Merchant(id="MER-003", name="No Hooks", webhook_url=None),
        Merchant(id="MER-404", name="Unconfigured"),
    ])
    await db_session.flush()

    db_session.add_all([
        ProcessorConfig(
            merchant_id="MER-001",
            processor="razorpay",
            test_mode=True,
            credentials={"keyId": "rzp_test_key", "keySecret": KEY_SECRET, "webhookSecret": WEBHOOK_SECRET},
        ),
        ProcessorConfig(
            merchant_id="MER-002",
            processor="razorpay",
            test_mode=True,
            credentials={"keyId": "rzp_test_books"},
        ),
        Order(id="ORD-1", merchant_id="MER-001", amount=49_900, currency="INR", status="pending"),
    ])
    await db_session.commit()

    yield db_session
