from .base import (
    Feature,
    GatewayProvider,
    PaymentOrderRequest,
    PaymentOrderResult,
    WebhookResult,
)
from .registry import GatewayRegistry, get_provider

__all__ = [
    "Feature",
    "GatewayProvider",
    "PaymentOrderRequest",
    "PaymentOrderResult",
    "WebhookResult",
    "GatewayRegistry",
    "get_provider",
]
