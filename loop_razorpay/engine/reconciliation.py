"""
Reconciliation service: gateway calls in, canonical results out.

Drives the order lifecycle for one merchant's gateway account:

  1. create_order  : gateway order for client-side checkout (never captured)
  2. capture_order : verify the first payment attempt and capture if needed
  3. refund_payment: request a refund for a captured payment
  4. query_status  : read-only view of the first payment attempt

Every gateway failure is caught here and returned as a result value with
the gateway's error code and message preserved. Callers never see raw
gateway exceptions.

Capture is idempotent by construction: the current attempt state is read
before acting, so an already-captured order returns success without a
second capture call.
"""

import logging
from typing import Any, Optional

from loop_razorpay.config import settings
from loop_razorpay.engine.signatures import verify_inbound
from loop_razorpay.engine.status_mapper import map_status
from loop_razorpay.gateway.base import GatewayCredentials, GatewayError, PaymentGateway
from loop_razorpay.models.enums import CanonicalPaymentStatus, GatewayPaymentStatus, RefundStatus
from loop_razorpay.models.results import PaymentResult, RefundResult

logger = logging.getLogger("loop_razorpay.reconciliation")

DEFAULT_ERROR_CODE = "razorpay_error"


def _error_fields(error: Exception) -> tuple[str, str]:
    if isinstance(error, GatewayError):
        return error.code or DEFAULT_ERROR_CODE, error.description or str(error)
    return DEFAULT_ERROR_CODE, str(error) or type(error).__name__


class ReconciliationService:
    """
    Stateless service bound to one gateway client.

    Construct one per unit of work with the merchant's gateway; there is no
    shared instance.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        credentials: Optional[GatewayCredentials] = None,
        display_name: Optional[str] = None,
    ):
        self._gateway = gateway
        self._credentials = credentials
        self._display_name = display_name or settings.checkout_display_name

    def _failed(self, operation: str, error: Exception, gateway_order_id: Optional[str] = None) -> PaymentResult:
        code, message = _error_fields(error)
        if isinstance(error, GatewayError):
            logger.warning("%s failed on %s: %s (%s)", operation, self._gateway.name, code, message)
        else:
            logger.exception("%s raised unexpectedly on %s", operation, self._gateway.name)
        return PaymentResult.failure(code, message, gateway_order_id=gateway_order_id)

    def verify_payment_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:
        """Check a checkout confirmation against this merchant's key secret."""
        if self._credentials is None:
            return False
        return verify_inbound(gateway_order_id, payment_id, signature, self._credentials.key_secret)

    async def create_order(
        self,
        order_id: str,
        merchant_id: str,
        amount: int,
        currency: str,
        metadata: Optional[dict[str, Any]] = None,
        customer: Optional[dict[str, Any]] = None,
        return_url: Optional[str] = None,
    ) -> PaymentResult:
        """
        Create a gateway order for client-side checkout.

        Settlement needs the customer to complete checkout, so a successful
        call returns ``success=False, status=PENDING`` with the gateway order
        id and the checkout parameters in ``metadata``.
        """
        notes = {"merchant_id": merchant_id, "order_id": order_id}
        notes.update({k: str(v) for k, v in (metadata or {}).items()})

        try:
            order = await self._gateway.create_order(
                amount=amount,
                currency=currency,
                receipt=order_id,
                notes=notes,
            )
        except Exception as e:
            return self._failed("create_order", e)

        customer = customer or {}
        checkout = {
            "key": self._credentials.key_id if self._credentials else None,
            "orderId": order.id,
            "amount": order.amount,
            "currency": order.currency,
            "name": self._display_name,
            "prefill": {"email": customer.get("email"), "name": customer.get("name")},
            "notes": order.notes,
            "callback_url": return_url,
        }

        logger.info("Created gateway order %s for %s (%s %d)", order.id, order_id, currency, amount)
        return PaymentResult(
            success=False,
            status=CanonicalPaymentStatus.PENDING,
            gateway_order_id=order.id,
            metadata=checkout,
        )

    async def capture_order(self, gateway_order_id: str, amount: int) -> PaymentResult:
        """Capture the first payment attempt of an order, idempotently."""
        try:
            payments = await self._gateway.fetch_payments_for_order(gateway_order_id)
            if not payments:
                return PaymentResult.failure(
                    "no_payment",
                    "No payment found for order",
                    gateway_order_id=gateway_order_id,
                )

            payment = payments[0]

            if payment.status == GatewayPaymentStatus.CAPTURED.value:
                logger.info("Order %s already captured by %s; skipping capture", gateway_order_id, payment.id)
                return PaymentResult(
                    success=True,
                    status=CanonicalPaymentStatus.CAPTURED,
                    gateway_order_id=gateway_order_id,
                    gateway_transaction_id=payment.id,
                )

            if payment.status == GatewayPaymentStatus.AUTHORIZED.value:
                captured = await self._gateway.capture_payment(payment.id, amount, payment.currency)
                logger.info("Captured %s for order %s", captured.id, gateway_order_id)
                return PaymentResult(
                    success=True,
                    status=CanonicalPaymentStatus.CAPTURED,
                    gateway_order_id=gateway_order_id,
                    gateway_transaction_id=captured.id,
                )
        except Exception as e:
            return self._failed("capture_order", e, gateway_order_id=gateway_order_id)

        return PaymentResult(
            success=False,
            status=map_status(payment.status),
            gateway_order_id=gateway_order_id,
            gateway_transaction_id=payment.id,
            error_code=payment.error_code,
            error_message=payment.error_description or f"Payment status: {payment.status}",
        )

    async def refund_payment(self, gateway_transaction_id: str, amount: int) -> RefundResult:
        """
        Refund a captured payment.

        ``success`` is True once the gateway accepts the request; ``status``
        is SUCCESS when the refund is already processed, PENDING otherwise.
        """
        try:
            refund = await self._gateway.refund(gateway_transaction_id, amount)
        except Exception as e:
            code, message = _error_fields(e)
            logger.warning("refund_payment failed for %s: %s (%s)", gateway_transaction_id, code, message)
            return RefundResult(
                success=False,
                status=RefundStatus.FAILED,
                error_code=code,
                error_message=message,
            )

        status = RefundStatus.SUCCESS if refund.status == "processed" else RefundStatus.PENDING
        logger.info("Refund %s for %s is %s", refund.id, gateway_transaction_id, status.value)
        return RefundResult(success=True, status=status, refund_id=refund.id)

    async def query_status(self, gateway_order_id: str) -> PaymentResult:
        """
        Current canonical status of an order's first payment attempt.

        No attempt yet is PENDING, not FAILED: the customer may still pay.
        """
        try:
            payments = await self._gateway.fetch_payments_for_order(gateway_order_id)
        except Exception as e:
            return self._failed("query_status", e, gateway_order_id=gateway_order_id)

        if not payments:
            return PaymentResult(
                success=False,
                status=CanonicalPaymentStatus.PENDING,
                gateway_order_id=gateway_order_id,
            )

        payment = payments[0]
        status = map_status(payment.status)
        return PaymentResult(
            success=status == CanonicalPaymentStatus.CAPTURED,
            status=status,
            gateway_order_id=gateway_order_id,
            gateway_transaction_id=payment.id,
            error_code=payment.error_code,
            error_message=payment.error_description,
        )
