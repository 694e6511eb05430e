"""Credential resolution from the processor config store."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loop_razorpay.config import settings
from loop_razorpay.gateway.base import GatewayCredentials
from loop_razorpay.models.records import ProcessorConfig

logger = logging.getLogger("loop_razorpay.credentials")


async def get_credentials(
    session: AsyncSession,
    merchant_id: str,
    processor: Optional[str] = None,
) -> Optional[GatewayCredentials]:
    """
    Look up a merchant's gateway credentials.

    Returns None when the merchant has no config for the processor or the
    stored credentials are incomplete; the caller reports that as a
    configuration error.
    """
    processor = processor or settings.processor_name
    result = await session.execute(
        select(ProcessorConfig)
        .where(ProcessorConfig.merchant_id == merchant_id, ProcessorConfig.processor == processor)
        .limit(1)
    )
    config = result.scalar_one_or_none()
    if config is None:
        return None

    stored = config.credentials or {}
    key_id, key_secret = stored.get("keyId"), stored.get("keySecret")
    if not key_id or not key_secret:
        logger.warning("Processor config for merchant %s is missing keyId/keySecret", merchant_id)
        return None

    return GatewayCredentials(
        key_id=key_id,
        key_secret=key_secret,
        webhook_secret=stored.get("webhookSecret"),
        test_mode=bool(config.test_mode),
    )
