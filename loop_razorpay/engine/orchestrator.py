"""
Store-backed units of work invoked by the orchestration platform.

Each function is one single-shot task: resolve the merchant's credentials,
build a fresh ReconciliationService around a fresh gateway client, make the
call, record what was observed, commit. Nothing is shared between calls.

Order status is monotone: once an order is captured or failed it is never
moved to a different status here. A refund creates a new transaction
record instead.

Webhook retries are declarative. ``deliver_webhook`` makes one attempt
and persists the schedule; ``due_webhook_events`` is what an external poller
queries to know which events to hand back to it.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from loop_razorpay.audit.logger import log_event
from loop_razorpay.engine.credentials import get_credentials
from loop_razorpay.engine.reconciliation import ReconciliationService
from loop_razorpay.engine.webhook_delivery import WebhookDeliveryEngine
from loop_razorpay.models.enums import (
    CanonicalPaymentStatus,
    RefundStatus,
    TransactionStatus,
    TransactionType,
    WebhookStatus,
)
from loop_razorpay.models.records import Merchant, Order, Transaction, WebhookEvent
from loop_razorpay.models.results import DeliveryResult, PaymentResult, RefundResult
from loop_razorpay.registry import GatewayFactory

logger = logging.getLogger("loop_razorpay.orchestrator")

NO_PROCESSOR_CONFIG = "no_processor_config"
NO_PROCESSOR_CONFIG_MESSAGE = "Razorpay processor not configured for merchant"


@dataclass
class PaymentInput:
    """Request to start collecting an order through the gateway."""

    order_id: str
    merchant_id: str
    amount: int  # minor units
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)
    customer: Optional[dict[str, Any]] = None
    return_url: Optional[str] = None


@asynccontextmanager
async def _reconciliation(
    session: AsyncSession,
    merchant_id: str,
    gateway_factory: GatewayFactory,
) -> AsyncIterator[Optional[ReconciliationService]]:
    """Yield a service for the merchant, or None when it is not configured."""
    credentials = await get_credentials(session, merchant_id)
    if credentials is None:
        logger.warning("No processor config for merchant %s", merchant_id)
        yield None
        return

    gateway = gateway_factory(credentials)
    try:
        yield ReconciliationService(gateway, credentials=credentials)
    finally:
        await gateway.aclose()


async def _order_by_processor_id(session: AsyncSession, processor_order_id: str) -> Optional[Order]:
    result = await session.execute(
        select(Order).where(Order.processor_order_id == processor_order_id).limit(1)
    )
    return result.scalar_one_or_none()


async def update_order_status(
    session: AsyncSession,
    order_id: str,
    status: CanonicalPaymentStatus,
    processor_order_id: Optional[str] = None,
    processor_transaction_id: Optional[str] = None,
) -> Optional[Order]:
    """
    Record an observed payment status on an order.

    Adds a capture/authorization transaction when a gateway transaction id
    is known, at most once per (order, type, transaction id). Terminal
    statuses are not overwritten.
    """
    order = await session.get(Order, order_id)
    if order is None:
        logger.warning("update_order_status: order %s not found", order_id)
        return None

    current = CanonicalPaymentStatus(order.status)
    if current.is_terminal and status != current:
        await log_event(session, "order_status_rejected", order_id=order_id, details={
            "current": current.value,
            "requested": status.value,
        })
        return order

    order.status = status.value
    if processor_order_id:
        order.processor_order_id = processor_order_id

    if processor_transaction_id and status != CanonicalPaymentStatus.PENDING:
        tx_type = (
            TransactionType.CAPTURE
            if status == CanonicalPaymentStatus.CAPTURED
            else TransactionType.AUTHORIZATION
        )
        existing = await session.execute(
            select(Transaction).where(
                Transaction.order_id == order_id,
                Transaction.type == tx_type.value,
                Transaction.processor_transaction_id == processor_transaction_id,
            )
        )
        if existing.scalar_one_or_none() is None:
            session.add(Transaction(
                order_id=order_id,
                type=tx_type.value,
                amount=order.amount,
                status=(
                    TransactionStatus.FAILED.value
                    if status == CanonicalPaymentStatus.FAILED
                    else TransactionStatus.SUCCESS.value
                ),
                processor_transaction_id=processor_transaction_id,
            ))

    await log_event(session, "order_status_updated", order_id=order_id, details={
        "status": status.value,
        "processor_order_id": processor_order_id,
        "processor_transaction_id": processor_transaction_id,
    })
    await session.flush()
    return order


async def _record_observed(session: AsyncSession, order: Optional[Order], result: PaymentResult) -> None:
    # Only a result that observed a payment attempt says anything about the
    # order; transport failures and "no payment yet" leave it untouched.
    if order is None or result.gateway_transaction_id is None:
        return
    await update_order_status(
        session,
        order.id,
        result.status,
        processor_transaction_id=result.gateway_transaction_id,
    )


async def process_payment(
    session: AsyncSession,
    payment: PaymentInput,
    gateway_factory: GatewayFactory,
) -> PaymentResult:
    """Create the gateway order for checkout and link it to the internal order."""
    async with _reconciliation(session, payment.merchant_id, gateway_factory) as service:
        if service is None:
            return PaymentResult.failure(NO_PROCESSOR_CONFIG, NO_PROCESSOR_CONFIG_MESSAGE)
        result = await service.create_order(
            order_id=payment.order_id,
            merchant_id=payment.merchant_id,
            amount=payment.amount,
            currency=payment.currency,
            metadata=payment.metadata,
            customer=payment.customer,
            return_url=payment.return_url,
        )

    order = await session.get(Order, payment.order_id)
    if order is not None and result.gateway_order_id:
        await update_order_status(
            session,
            order.id,
            CanonicalPaymentStatus.PENDING,
            processor_order_id=result.gateway_order_id,
        )
    elif result.error_code:
        await log_event(session, "gateway_order_failed", order_id=payment.order_id, details={
            "error_code": result.error_code,
            "error_message": result.error_message,
        })
    await session.commit()
    return result


async def capture_payment(
    session: AsyncSession,
    processor_order_id: str,
    amount: int,
    merchant_id: str,
    gateway_factory: GatewayFactory,
) -> PaymentResult:
    """Idempotently capture an order's payment and record the outcome."""
    async with _reconciliation(session, merchant_id, gateway_factory) as service:
        if service is None:
            return PaymentResult.failure(NO_PROCESSOR_CONFIG, NO_PROCESSOR_CONFIG_MESSAGE)
        result = await service.capture_order(processor_order_id, amount)

    await _record_observed(session, await _order_by_processor_id(session, processor_order_id), result)
    await session.commit()
    return result


async def get_payment_status(
    session: AsyncSession,
    processor_order_id: str,
    merchant_id: str,
    gateway_factory: GatewayFactory,
) -> PaymentResult:
    """Query the gateway for an order's status and record what was observed."""
    async with _reconciliation(session, merchant_id, gateway_factory) as service:
        if service is None:
            return PaymentResult.failure(NO_PROCESSOR_CONFIG, NO_PROCESSOR_CONFIG_MESSAGE)
        result = await service.query_status(processor_order_id)

    await _record_observed(session, await _order_by_processor_id(session, processor_order_id), result)
    await session.commit()
    return result


async def refund_payment(
    session: AsyncSession,
    processor_transaction_id: str,
    amount: int,
    merchant_id: str,
    gateway_factory: GatewayFactory,
) -> RefundResult:
    """Request a refund and record it as a new transaction on the order."""
    async with _reconciliation(session, merchant_id, gateway_factory) as service:
        if service is None:
            return RefundResult(
                success=False,
                status=RefundStatus.FAILED,
                error_code=NO_PROCESSOR_CONFIG,
                error_message=NO_PROCESSOR_CONFIG_MESSAGE,
            )
        result = await service.refund_payment(processor_transaction_id, amount)

    captured = (await session.execute(
        select(Transaction).where(
            Transaction.processor_transaction_id == processor_transaction_id,
            Transaction.type == TransactionType.CAPTURE.value,
        ).limit(1)
    )).scalar_one_or_none()
    order_id = captured.order_id if captured else None

    if result.success and order_id:
        session.add(Transaction(
            order_id=order_id,
            type=TransactionType.REFUND.value,
            amount=amount,
            status=(
                TransactionStatus.SUCCESS.value
                if result.status == RefundStatus.SUCCESS
                else TransactionStatus.PENDING.value
            ),
            processor_transaction_id=result.refund_id,
        ))

    await log_event(session, "refund_requested", order_id=order_id, details={
        "payment_id": processor_transaction_id,
        "amount": amount,
        "success": result.success,
        "status": result.status.value,
        "refund_id": result.refund_id,
        "error_code": result.error_code,
    })
    await session.commit()
    return result


async def confirm_payment(
    session: AsyncSession,
    merchant_id: str,
    order_id: str,
    processor_order_id: str,
    processor_payment_id: str,
    signature: str,
    gateway_factory: GatewayFactory,
) -> PaymentResult:
    """
    Handle the checkout confirmation posted back after client-side payment.

    The signature over ``"{order_id}|{payment_id}"`` is checked with the
    merchant's key secret before anything else. Replays of a valid callback
    are harmless because capture checks current state first.
    """
    async with _reconciliation(session, merchant_id, gateway_factory) as service:
        if service is None:
            return PaymentResult.failure(NO_PROCESSOR_CONFIG, NO_PROCESSOR_CONFIG_MESSAGE)

        if not service.verify_payment_signature(processor_order_id, processor_payment_id, signature):
            await log_event(session, "callback_signature_invalid", order_id=order_id, details={
                "processor_order_id": processor_order_id,
                "processor_payment_id": processor_payment_id,
            })
            await session.commit()
            return PaymentResult.failure(
                "invalid_signature",
                "Payment signature verification failed",
                gateway_order_id=processor_order_id,
            )

        order = await session.get(Order, order_id)
        if order is None or order.processor_order_id != processor_order_id:
            return PaymentResult.failure(
                "order_mismatch",
                f"Order {order_id} is not linked to gateway order {processor_order_id}",
                gateway_order_id=processor_order_id,
            )

        await log_event(session, "callback_verified", order_id=order_id, details={
            "processor_order_id": processor_order_id,
            "processor_payment_id": processor_payment_id,
        })
        result = await service.capture_order(processor_order_id, order.amount)

    await _record_observed(session, order, result)
    await session.commit()
    return result


async def get_merchant_webhook_target(
    session: AsyncSession,
    merchant_id: str,
) -> tuple[Optional[str], Optional[str]]:
    """(url, secret) configured for the merchant, each None when unset."""
    merchant = await session.get(Merchant, merchant_id)
    if merchant is None:
        return None, None
    return merchant.webhook_url or None, merchant.webhook_secret or None


async def enqueue_webhook(
    session: AsyncSession,
    merchant_id: str,
    event_type: str,
    payload: dict[str, Any],
) -> Optional[WebhookEvent]:
    """
    Create a pending webhook event for the merchant's endpoint.

    Returns None when the merchant has no webhook URL. The event is due
    immediately (no next_retry_at).
    """
    url, secret = await get_merchant_webhook_target(session, merchant_id)
    if url is None:
        logger.info("Merchant %s has no webhook URL; dropping %s", merchant_id, event_type)
        return None

    event = WebhookEvent(
        merchant_id=merchant_id,
        event_type=event_type,
        payload=payload,
        destination_url=url,
        secret=secret,
        status=WebhookStatus.PENDING.value,
        attempts=0,
    )
    session.add(event)
    await session.flush()
    await log_event(session, "webhook_enqueued", webhook_event_id=event.id, details={
        "merchant_id": merchant_id,
        "event_type": event_type,
    })
    await session.commit()
    return event


async def deliver_webhook(
    session: AsyncSession,
    webhook_event_id: str,
    engine: WebhookDeliveryEngine,
) -> DeliveryResult:
    """
    Make one delivery attempt for a stored event and persist the outcome.

    A cancelled attempt is committed as a failure before the cancellation
    propagates, so it counts toward the attempt ceiling.
    """
    event = await session.get(WebhookEvent, webhook_event_id)
    if event is None:
        return DeliveryResult(
            success=False,
            status=WebhookStatus.FAILED,
            attempts=0,
            error_message=f"Webhook event not found: {webhook_event_id}",
        )

    try:
        result = await engine.deliver(event)
    except asyncio.CancelledError:
        await log_event(session, "webhook_attempt_cancelled", webhook_event_id=event.id, details={
            "attempts": event.attempts,
            "next_retry_at": event.next_retry_at,
        })
        await session.commit()
        raise

    await log_event(session, "webhook_attempt", webhook_event_id=event.id, details={
        "attempts": result.attempts,
        "status": result.status.value,
        "status_code": result.status_code,
        "next_retry_at": result.next_retry_at,
        "error": result.error_message,
    })
    await session.commit()
    return result


async def due_webhook_events(
    session: AsyncSession,
    now: Optional[datetime] = None,
    limit: int = 100,
) -> list[WebhookEvent]:
    """Pending events whose next attempt is due (never-attempted events included)."""
    now = now or datetime.now(timezone.utc)
    result = await session.execute(
        select(WebhookEvent)
        .where(
            WebhookEvent.status == WebhookStatus.PENDING.value,
            or_(WebhookEvent.next_retry_at.is_(None), WebhookEvent.next_retry_at <= now),
        )
        .order_by(WebhookEvent.created_at)
        .limit(limit)
    )
    return list(result.scalars().all())
