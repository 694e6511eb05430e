"""
Merchant webhook endpoints.

POST /webhooks              : Enqueue an event for a merchant.
GET  /webhooks/due          : Events a poller should deliver now.
GET  /webhooks/{id}         : Delivery state of one event.
POST /webhooks/{id}/deliver : Make one delivery attempt.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from loop_razorpay.api.deps import get_delivery_engine
from loop_razorpay.database import get_session
from loop_razorpay.engine import orchestrator
from loop_razorpay.engine.webhook_delivery import WebhookDeliveryEngine
from loop_razorpay.models.records import WebhookEvent

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class EnqueueRequest(BaseModel):
    merchant_id: str
    event_type: str
    payload: dict[str, Any]


class WebhookEventDetail(BaseModel):
    id: str
    merchant_id: Optional[str]
    event_type: str
    destination_url: str
    status: str
    attempts: int
    last_attempt_at: Optional[str]
    next_retry_at: Optional[str]
    delivered_at: Optional[str]
    created_at: Optional[str]


class DeliveryResponse(BaseModel):
    success: bool
    status: str
    attempts: int
    status_code: Optional[int] = None
    delivered_at: Optional[str] = None
    next_retry_at: Optional[str] = None
    error_message: Optional[str] = None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _event_detail(event: WebhookEvent) -> WebhookEventDetail:
    # Secrets are never returned.
    return WebhookEventDetail(
        id=event.id,
        merchant_id=event.merchant_id,
        event_type=event.event_type,
        destination_url=event.destination_url,
        status=event.status,
        attempts=event.attempts or 0,
        last_attempt_at=_iso(event.last_attempt_at),
        next_retry_at=_iso(event.next_retry_at),
        delivered_at=_iso(event.delivered_at),
        created_at=_iso(event.created_at),
    )


@router.post("", response_model=WebhookEventDetail, status_code=201)
async def enqueue(body: EnqueueRequest, session: AsyncSession = Depends(get_session)):
    event = await orchestrator.enqueue_webhook(session, body.merchant_id, body.event_type, body.payload)
    if event is None:
        raise HTTPException(
            status_code=422,
            detail=f"Merchant {body.merchant_id} has no webhook URL configured",
        )
    return _event_detail(event)


@router.get("/due", response_model=list[WebhookEventDetail])
async def due(
    limit: int = Query(100, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
):
    events = await orchestrator.due_webhook_events(session, limit=limit)
    return [_event_detail(e) for e in events]


@router.get("/{webhook_event_id}", response_model=WebhookEventDetail)
async def get_event(webhook_event_id: str, session: AsyncSession = Depends(get_session)):
    event = await session.get(WebhookEvent, webhook_event_id)
    if not event:
        raise HTTPException(status_code=404, detail=f"Webhook event not found: {webhook_event_id}")
    return _event_detail(event)


@router.post("/{webhook_event_id}/deliver", response_model=DeliveryResponse)
async def deliver(
    webhook_event_id: str,
    session: AsyncSession = Depends(get_session),
    engine: WebhookDeliveryEngine = Depends(get_delivery_engine),
):
    if not await session.get(WebhookEvent, webhook_event_id):
        raise HTTPException(status_code=404, detail=f"Webhook event not found: {webhook_event_id}")
    result = await orchestrator.deliver_webhook(session, webhook_event_id, engine)
    return DeliveryResponse(
        success=result.success,
        status=result.status.value,
        attempts=result.attempts,
        status_code=result.status_code,
        delivered_at=_iso(result.delivered_at),
        next_retry_at=_iso(result.next_retry_at),
        error_message=result.error_message,
    )
