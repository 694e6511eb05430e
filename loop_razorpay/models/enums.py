"""Enumerations for the processor adapter domain model."""

from enum import Enum


class CanonicalPaymentStatus(str, Enum):
    """Processor-agnostic payment states reported to the orchestrator.

    CAPTURED and FAILED are terminal for a given payment identifier.
    """

    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CanonicalPaymentStatus.CAPTURED, CanonicalPaymentStatus.FAILED)


class GatewayPaymentStatus(str, Enum):
    """Payment attempt states as reported by Razorpay."""

    CREATED = "created"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"


class RefundStatus(str, Enum):
    """Refund outcome. PENDING means accepted but not yet settled."""

    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class WebhookStatus(str, Enum):
    """Lifecycle states for an outbound merchant webhook."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class TransactionType(str, Enum):
    AUTHORIZATION = "authorization"
    CAPTURE = "capture"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
