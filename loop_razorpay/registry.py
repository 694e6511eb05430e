"""
Processor registry.

Maps a processor name to the factory that builds its gateway client from a
merchant's credentials. Nothing registers itself on import: the
composition root calls ``register()`` explicitly.
"""

import logging
from typing import Callable

from loop_razorpay.gateway.base import GatewayCredentials, PaymentGateway
from loop_razorpay.gateway.mock import build_mock_gateway_factory
from loop_razorpay.gateway.razorpay import build_razorpay_gateway

logger = logging.getLogger("loop_razorpay.registry")

GatewayFactory = Callable[[GatewayCredentials], PaymentGateway]


class UnknownProcessorError(KeyError):
    """No gateway factory registered under the requested name."""


class ProcessorRegistry:
    def __init__(self):
        self._factories: dict[str, GatewayFactory] = {}

    def register_processor(self, name: str, factory: GatewayFactory) -> None:
        if name in self._factories:
            logger.warning("Replacing gateway factory for processor %s", name)
        self._factories[name] = factory

    def get(self, name: str) -> GatewayFactory:
        try:
            return self._factories[name]
        except KeyError:
            raise UnknownProcessorError(name) from None

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: str) -> bool:
        return name in self._factories


def register(registry: ProcessorRegistry) -> ProcessorRegistry:
    """
    Register the Razorpay gateway and the in-memory ``mock`` gateway.

    Called once from the composition root; ``settings.processor_name``
    picks which one serves requests.
    """
    registry.register_processor("razorpay", build_razorpay_gateway)
    registry.register_processor("mock", build_mock_gateway_factory())
    return registry
