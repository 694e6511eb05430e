from loop_razorpay.gateway.base import (
    GatewayCredentials,
    GatewayError,
    GatewayOrder,
    GatewayPayment,
    GatewayRefund,
    PaymentGateway,
)

__all__ = [
    "GatewayCredentials",
    "GatewayError",
    "GatewayOrder",
    "GatewayPayment",
    "GatewayRefund",
    "PaymentGateway",
]
