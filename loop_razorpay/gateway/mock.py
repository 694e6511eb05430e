"""
In-memory gateway for local runs and tests.

Simulates the vendor API closely enough to exercise the reconciliation
paths:
  - Configurable latency (default 0ms)
  - Configurable random failure rate (default 0%)
  - Payment attempts that can be seeded per order in any gateway state
  - Call counters so tests can assert on duplicate captures
"""

import asyncio
import random
import uuid
from collections import Counter
from typing import Callable, Optional

from loop_razorpay.config import settings
from loop_razorpay.gateway.base import (
    GatewayCredentials,
    GatewayError,
    GatewayOrder,
    GatewayPayment,
    GatewayRefund,
    PaymentGateway,
)


class MockGateway(PaymentGateway):
    """
    Gateway double that keeps orders, payments and refunds in dictionaries.

    ``refund_status`` controls what a successful refund reports
    ("processed" or "pending"). ``fail_with`` makes every call raise the
    given error until cleared. With ``auto_authorize`` every new order gets
    an authorized payment, as if the customer completed checkout at once.
    """

    def __init__(
        self,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
        refund_status: str = "processed",
        auto_authorize: bool = False,
    ):
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self.refund_status = refund_status
        self.auto_authorize = auto_authorize
        self.fail_with: Optional[Exception] = None
        self.orders: dict[str, GatewayOrder] = {}
        self.payments: dict[str, list[GatewayPayment]] = {}
        self.calls: Counter[str] = Counter()

    @property
    def name(self) -> str:
        return "mock_gateway"

    def add_payment(
        self,
        order_id: str,
        status: str,
        payment_id: Optional[str] = None,
        amount: int = 0,
        currency: str = "INR",
        error_code: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> GatewayPayment:
        """Seed a payment attempt as if the customer had gone through checkout."""
        payment = GatewayPayment(
            id=payment_id or f"pay_{uuid.uuid4().hex[:14]}",
            status=status,
            amount=amount,
            currency=currency,
            order_id=order_id,
            method="card",
            error_code=error_code,
            error_description=error_description,
        )
        self.payments.setdefault(order_id, []).append(payment)
        return payment

    async def _simulate(self, call: str) -> None:
        self.calls[call] += 1

        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        if self.fail_with is not None:
            raise self.fail_with

        if random.random() < self._failure_rate:
            raise GatewayError(
                "Mock transient error: service temporarily unavailable",
                code="SERVER_ERROR",
                status_code=503,
            )

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrder:
        await self._simulate("create_order")
        if amount <= 0:
            raise GatewayError(
                "The amount must be atleast INR 1.00",
                code="BAD_REQUEST_ERROR",
                status_code=400,
            )
        order = GatewayOrder(
            id=f"order_{uuid.uuid4().hex[:14]}",
            amount=amount,
            currency=currency,
            status="created",
            receipt=receipt,
            notes=dict(notes),
        )
        self.orders[order.id] = order
        if self.auto_authorize:
            self.add_payment(order.id, "authorized", amount=amount, currency=currency)
        return order

    async def fetch_payments_for_order(self, order_id: str) -> list[GatewayPayment]:
        await self._simulate("fetch_payments_for_order")
        return list(self.payments.get(order_id, []))

    def _find_payment(self, payment_id: str) -> GatewayPayment:
        for attempts in self.payments.values():
            for payment in attempts:
                if payment.id == payment_id:
                    return payment
        raise GatewayError(
            "The id provided does not exist",
            code="BAD_REQUEST_ERROR",
            status_code=400,
        )

    async def capture_payment(self, payment_id: str, amount: int, currency: str) -> GatewayPayment:
        await self._simulate("capture_payment")
        payment = self._find_payment(payment_id)
        if payment.status != "authorized":
            raise GatewayError(
                "This payment has already been captured",
                code="BAD_REQUEST_ERROR",
                status_code=400,
            )
        payment.status = "captured"
        return payment

    async def refund(self, payment_id: str, amount: int) -> GatewayRefund:
        await self._simulate("refund")
        payment = self._find_payment(payment_id)
        return GatewayRefund(
            id=f"rfnd_{uuid.uuid4().hex[:14]}",
            status=self.refund_status,
            payment_id=payment.id,
            amount=amount,
        )


def build_mock_gateway_factory() -> Callable[[GatewayCredentials], PaymentGateway]:
    """
    Factory registered for the ``mock`` processor.

    Every merchant shares one in-memory gateway so orders created by one
    request are visible to the capture and status requests that follow.
    """
    gateway = MockGateway(auto_authorize=True)

    def factory(credentials: GatewayCredentials) -> PaymentGateway:
        return gateway

    return factory
