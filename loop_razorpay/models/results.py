"""
Result values returned across the adapter's public contract.

All results are frozen: they are created fresh per call and callers persist
or discard them. Gateway failures are expressed here as data, never raised.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from loop_razorpay.models.enums import CanonicalPaymentStatus, RefundStatus, WebhookStatus


@dataclass(frozen=True)
class PaymentResult:
    """Canonical outcome of a create/capture/query call."""

    success: bool
    status: CanonicalPaymentStatus
    gateway_order_id: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.success != (self.status == CanonicalPaymentStatus.CAPTURED):
            raise ValueError(
                f"PaymentResult.success must be True exactly when status is captured "
                f"(got success={self.success}, status={self.status.value})"
            )

    @classmethod
    def failure(
        cls,
        error_code: Optional[str],
        error_message: Optional[str],
        gateway_order_id: Optional[str] = None,
    ) -> "PaymentResult":
        return cls(
            success=False,
            status=CanonicalPaymentStatus.FAILED,
            gateway_order_id=gateway_order_id,
            error_code=error_code,
            error_message=error_message,
        )


@dataclass(frozen=True)
class RefundResult:
    """
    Outcome of a refund request.

    ``success`` tracks whether the gateway accepted the request; ``status``
    tracks settlement (SUCCESS once processed, PENDING while async).
    """

    success: bool
    status: RefundStatus
    refund_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single webhook delivery attempt."""

    success: bool
    status: WebhookStatus
    attempts: int
    status_code: Optional[int] = None
    delivered_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class SignedEnvelope:
    """An outbound body together with its timestamp and v1 signature."""

    timestamp: str
    body: str
    signature: str
