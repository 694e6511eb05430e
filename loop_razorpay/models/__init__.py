from loop_razorpay.models.enums import (
    CanonicalPaymentStatus,
    GatewayPaymentStatus,
    RefundStatus,
    TransactionStatus,
    TransactionType,
    WebhookStatus,
)
from loop_razorpay.models.records import (
    AuditLog,
    Base,
    Merchant,
    Order,
    ProcessorConfig,
    Transaction,
    WebhookEvent,
)
from loop_razorpay.models.results import DeliveryResult, PaymentResult, RefundResult, SignedEnvelope

__all__ = [
    "Base",
    "Merchant",
    "ProcessorConfig",
    "Order",
    "Transaction",
    "WebhookEvent",
    "AuditLog",
    "CanonicalPaymentStatus",
    "GatewayPaymentStatus",
    "RefundStatus",
    "TransactionStatus",
    "TransactionType",
    "WebhookStatus",
    "PaymentResult",
    "RefundResult",
    "DeliveryResult",
    "SignedEnvelope",
]
