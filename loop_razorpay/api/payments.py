"""
Payment endpoints.

POST /payments                        : Create a gateway order for checkout.
POST /payments/callback               : Checkout confirmation from the client.
POST /payments/{order_id}/capture     : Capture (idempotent).
POST /payments/{payment_id}/refund    : Refund a captured payment.
GET  /payments/{order_id}/status      : Current canonical status.

Gateway failures come back as 200 with ``success=false`` and the gateway's
error code; only an invalid callback signature is rejected outright.
"""

from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loop_razorpay.api.deps import get_gateway_factory
from loop_razorpay.database import get_session
from loop_razorpay.engine import orchestrator
from loop_razorpay.models.results import PaymentResult, RefundResult
from loop_razorpay.registry import GatewayFactory

router = APIRouter(prefix="/payments", tags=["payments"])


class CreatePaymentRequest(BaseModel):
    order_id: str
    merchant_id: str
    amount: int = Field(gt=0, description="Amount in minor units (paise)")
    currency: str = "INR"
    metadata: dict[str, Any] = Field(default_factory=dict)
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    return_url: Optional[str] = None


class CaptureRequest(BaseModel):
    merchant_id: str
    amount: int = Field(gt=0)


class RefundRequest(BaseModel):
    merchant_id: str
    amount: int = Field(gt=0)


class CallbackRequest(BaseModel):
    merchant_id: str
    order_id: str
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentResponse(BaseModel):
    success: bool
    status: str
    gateway_order_id: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RefundResponse(BaseModel):
    success: bool
    status: str
    refund_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


def _payment_response(result: PaymentResult) -> PaymentResponse:
    data = asdict(result)
    data["status"] = result.status.value
    return PaymentResponse(**data)


def _refund_response(result: RefundResult) -> RefundResponse:
    data = asdict(result)
    data["status"] = result.status.value
    return RefundResponse(**data)


@router.post("", response_model=PaymentResponse, status_code=201)
async def create_payment(
    body: CreatePaymentRequest,
    session: AsyncSession = Depends(get_session),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
):
    """
    Create a gateway order. The result is pending until the customer pays;
    ``metadata`` carries the checkout parameters for the client.
    """
    customer = None
    if body.customer_email or body.customer_name:
        customer = {"email": body.customer_email, "name": body.customer_name}
    payment = orchestrator.PaymentInput(
        order_id=body.order_id,
        merchant_id=body.merchant_id,
        amount=body.amount,
        currency=body.currency,
        metadata=body.metadata,
        customer=customer,
        return_url=body.return_url,
    )
    result = await orchestrator.process_payment(session, payment, gateway_factory)
    return _payment_response(result)


@router.post("/callback", response_model=PaymentResponse)
async def payment_callback(
    body: CallbackRequest,
    session: AsyncSession = Depends(get_session),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
):
    """Verify a checkout confirmation and capture the payment."""
    result = await orchestrator.confirm_payment(
        session,
        merchant_id=body.merchant_id,
        order_id=body.order_id,
        processor_order_id=body.razorpay_order_id,
        processor_payment_id=body.razorpay_payment_id,
        signature=body.razorpay_signature,
        gateway_factory=gateway_factory,
    )
    if result.error_code == "invalid_signature":
        raise HTTPException(status_code=401, detail=result.error_message)
    return _payment_response(result)


@router.post("/{processor_order_id}/capture", response_model=PaymentResponse)
async def capture_payment(
    processor_order_id: str,
    body: CaptureRequest,
    session: AsyncSession = Depends(get_session),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
):
    result = await orchestrator.capture_payment(
        session, processor_order_id, body.amount, body.merchant_id, gateway_factory
    )
    return _payment_response(result)


@router.post("/{processor_transaction_id}/refund", response_model=RefundResponse)
async def refund_payment(
    processor_transaction_id: str,
    body: RefundRequest,
    session: AsyncSession = Depends(get_session),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
):
    result = await orchestrator.refund_payment(
        session, processor_transaction_id, body.amount, body.merchant_id, gateway_factory
    )
    return _refund_response(result)


@router.get("/{processor_order_id}/status", response_model=PaymentResponse)
async def payment_status(
    processor_order_id: str,
    merchant_id: str = Query(...),
    session: AsyncSession = Depends(get_session),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
):
    result = await orchestrator.get_payment_status(
        session, processor_order_id, merchant_id, gateway_factory
    )
    return _payment_response(result)
