"""Request-scoped dependencies resolved from the composition root."""

from fastapi import Request

from loop_razorpay.config import settings
from loop_razorpay.engine.webhook_delivery import WebhookDeliveryEngine
from loop_razorpay.registry import GatewayFactory


def get_gateway_factory(request: Request) -> GatewayFactory:
    return request.app.state.registry.get(settings.processor_name)


def get_delivery_engine(request: Request) -> WebhookDeliveryEngine:
    return request.app.state.delivery_engine
