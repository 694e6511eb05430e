"""
Seed the database with demo merchants.

Creates:
  - 3 merchants with Razorpay test-mode credentials
  - One merchant without a webhook secret (unsigned deliveries)
  - One merchant without a webhook URL (events are dropped)
  - A pending order per merchant, ready for POST /api/payments

Configs are stored under ``settings.processor_name``, so seeding with
PROCESSOR_NAME=mock prepares a local run against the in-memory gateway.

Run:
    python -m seed.seed_data
    PROCESSOR_NAME=mock python -m seed.seed_data
"""

import asyncio

from loop_razorpay.config import settings
from loop_razorpay.database import async_session, init_db
from loop_razorpay.models.records import Merchant, Order, ProcessorConfig


MERCHANTS = [
    {
        "id": "MER-001",
        "name": "Chai Point Retail",
        "webhook_url": "http://localhost:9000/webhooks/loop",
        "webhook_secret": "whsec_chai_point_demo",
    },
    {
        "id": "MER-002",
        "name": "Bengaluru Book House",
        "webhook_url": "http://localhost:9001/hooks",
        "webhook_secret": None,
    },
    {
        "id": "MER-003",
        "name": "Kochi Spice Traders",
        "webhook_url": None,
        "webhook_secret": None,
    },
]

PROCESSOR_CONFIGS = [
    {
        "merchant_id": "MER-001",
        "credentials": {
            "keyId": "rzp_test_chaipoint01",
            "keySecret": "chaipoint_test_secret",
            "webhookSecret": "whsec_chai_point_demo",
        },
    },
    {
        "merchant_id": "MER-002",
        "credentials": {"keyId": "rzp_test_bookhouse01", "keySecret": "bookhouse_test_secret"},
    },
    {
        "merchant_id": "MER-003",
        "credentials": {"keyId": "rzp_test_spice01", "keySecret": "spice_test_secret"},
    },
]

ORDERS = [
    {"id": "ORD-1001", "merchant_id": "MER-001", "amount": 49_900, "currency": "INR"},
    {"id": "ORD-1002", "merchant_id": "MER-002", "amount": 129_900, "currency": "INR"},
    {"id": "ORD-1003", "merchant_id": "MER-003", "amount": 25_000, "currency": "INR"},
]


async def seed():
    """Seed the database with demo merchants, configs and orders."""
    await init_db()

    async with async_session() as session:
        existing = await session.get(Merchant, "MER-001")
        if existing:
            print("Database already seeded. Skipping.")
            return

        for merchant_data in MERCHANTS:
            session.add(Merchant(**merchant_data))
        await session.flush()

        for config_data in PROCESSOR_CONFIGS:
            session.add(ProcessorConfig(processor=settings.processor_name, test_mode=True, **config_data))

        for order_data in ORDERS:
            session.add(Order(status="pending", **order_data))

        await session.commit()
        print(
            f"Seeded {len(MERCHANTS)} merchants, {len(PROCESSOR_CONFIGS)} processor configs "
            f"and {len(ORDERS)} orders."
        )


if __name__ == "__main__":
    asyncio.run(seed())
