"""
Razorpay REST client built on httpx.

Authenticates with HTTP basic auth (key id / key secret) and maps JSON
responses into gateway records. Non-2xx responses and transport failures
are raised as GatewayError so the reconciliation boundary sees one
exception type.
"""

import logging
from typing import Any, Optional

import httpx

from loop_razorpay.config import settings
from loop_razorpay.gateway.base import (
    GatewayCredentials,
    GatewayError,
    GatewayOrder,
    GatewayPayment,
    GatewayRefund,
    PaymentGateway,
)

logger = logging.getLogger("loop_razorpay.gateway")


def _payment_from_json(data: dict[str, Any]) -> GatewayPayment:
    return GatewayPayment(
        id=data["id"],
        status=data.get("status", ""),
        amount=data.get("amount", 0),
        currency=data.get("currency", ""),
        order_id=data.get("order_id"),
        method=data.get("method"),
        error_code=data.get("error_code"),
        error_description=data.get("error_description"),
    )


class RazorpayGateway(PaymentGateway):
    """Gateway client bound to a single merchant's credentials."""

    def __init__(
        self,
        credentials: GatewayCredentials,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._credentials = credentials
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.gateway_base_url,
            auth=(credentials.key_id, credentials.key_secret),
            timeout=timeout if timeout is not None else settings.gateway_timeout_seconds,
        )

    @property
    def name(self) -> str:
        return "razorpay"

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise GatewayError(f"Gateway request timed out: {e}", code="gateway_timeout") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Gateway unreachable: {e}", code="gateway_unreachable") from e

        if response.is_success:
            return response.json()

        code, description = None, f"HTTP {response.status_code}"
        try:
            error = response.json().get("error") or {}
            code = error.get("code")
            description = error.get("description") or description
        except ValueError:
            pass
        logger.warning("Gateway %s %s failed: %s %s", method, path, response.status_code, code)
        raise GatewayError(description, code=code, status_code=response.status_code)

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrder:
        data = await self._request(
            "POST",
            "/orders",
            json={"amount": amount, "currency": currency, "receipt": receipt, "notes": notes},
        )
        return GatewayOrder(
            id=data["id"],
            amount=data.get("amount", amount),
            currency=data.get("currency", currency),
            status=data.get("status", ""),
            receipt=data.get("receipt"),
            notes=data.get("notes") or {},
        )

    async def fetch_payments_for_order(self, order_id: str) -> list[GatewayPayment]:
        data = await self._request("GET", f"/orders/{order_id}/payments")
        return [_payment_from_json(item) for item in data.get("items") or []]

    async def capture_payment(self, payment_id: str, amount: int, currency: str) -> GatewayPayment:
        data = await self._request(
            "POST",
            f"/payments/{payment_id}/capture",
            json={"amount": amount, "currency": currency},
        )
        return _payment_from_json(data)

    async def refund(self, payment_id: str, amount: int) -> GatewayRefund:
        data = await self._request(
            "POST",
            f"/payments/{payment_id}/refund",
            json={"amount": amount, "speed": "normal"},
        )
        return GatewayRefund(
            id=data["id"],
            status=data.get("status", ""),
            payment_id=data.get("payment_id", payment_id),
            amount=data.get("amount", amount),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def build_razorpay_gateway(credentials: GatewayCredentials) -> PaymentGateway:
    """Gateway factory registered for the ``razorpay`` processor."""
    return RazorpayGateway(credentials)
