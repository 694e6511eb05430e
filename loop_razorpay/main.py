"""
Loop Razorpay processor: canonical payment operations over the Razorpay API,
plus signed, retried merchant webhook delivery.

Start the server:
    uvicorn loop_razorpay.main:app --reload

This module is the composition root: processors are registered and the
shared delivery engine is built here, at startup, never on import.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from loop_razorpay.api.health import router as health_router
from loop_razorpay.api.payments import router as payments_router
from loop_razorpay.api.webhooks import router as webhooks_router
from loop_razorpay.config import settings
from loop_razorpay.database import close_db, init_db
from loop_razorpay.engine.webhook_delivery import WebhookDeliveryEngine
from loop_razorpay.registry import ProcessorRegistry, register

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("loop_razorpay")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the store, register processors and open the webhook client."""
    await init_db()
    app.state.registry = register(ProcessorRegistry())

    try:
        async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as client:
            app.state.delivery_engine = WebhookDeliveryEngine(client=client)
            logger.info(
                "Registered processors: %s (serving %s)",
                ", ".join(app.state.registry.names()),
                settings.processor_name,
            )
            yield
    finally:
        await close_db()


app = FastAPI(
    title="Loop Razorpay Processor",
    description=(
        "Adapter between the Loop payment orchestrator and Razorpay. Translates "
        "create/capture/refund/status into gateway calls with canonical results, "
        "verifies checkout callbacks, and delivers signed merchant webhooks with "
        "exponential-backoff retry bookkeeping."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(payments_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
