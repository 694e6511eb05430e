"""
Abstract payment gateway interface.

The gateway client is a thin call wrapper: each method is one request to
the vendor API mapped to a raw record. It does not interpret statuses;
that is the job of the status mapper and the reconciliation service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


class GatewayError(Exception):
    """
    Structured error from the payment gateway.

    ``code`` and ``description`` mirror the vendor's error object
    (``{"error": {"code": ..., "description": ...}}``).
    """

    def __init__(
        self,
        description: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(description)
        self.code = code
        self.description = description
        self.status_code = status_code


@dataclass(frozen=True)
class GatewayCredentials:
    """API keys for one merchant's gateway account."""

    key_id: str
    key_secret: str
    webhook_secret: Optional[str] = None
    test_mode: bool = True


@dataclass
class GatewayOrder:
    id: str
    amount: int
    currency: str
    status: str
    receipt: Optional[str] = None
    notes: dict[str, str] = field(default_factory=dict)


@dataclass
class GatewayPayment:
    """A payment attempt made against a gateway order."""

    id: str
    status: str
    amount: int
    currency: str
    order_id: Optional[str] = None
    method: Optional[str] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None


@dataclass
class GatewayRefund:
    id: str
    status: str
    payment_id: Optional[str] = None
    amount: Optional[int] = None


class PaymentGateway(ABC):
    """Abstract base class for gateway API clients."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier (e.g. 'razorpay')."""
        ...

    @abstractmethod
    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrder:
        """
        Create a gateway order to be paid through client-side checkout.

        Raises:
            GatewayError: If the gateway rejects the request or is unreachable.
        """
        ...

    @abstractmethod
    async def fetch_payments_for_order(self, order_id: str) -> list[GatewayPayment]:
        """List payment attempts for an order, most relevant first."""
        ...

    @abstractmethod
    async def capture_payment(self, payment_id: str, amount: int, currency: str) -> GatewayPayment:
        """Capture an authorized payment attempt."""
        ...

    @abstractmethod
    async def refund(self, payment_id: str, amount: int) -> GatewayRefund:
        """Request a (normal speed) refund for a captured payment."""
        ...

    async def aclose(self) -> None:
        """Release any transport resources held by the client."""
        return None
