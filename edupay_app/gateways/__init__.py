# edupay_app/gateways/__init__.py
# -*- coding: utf-8 -*-
from .base import (
    PaymentGateway,
    StandardStatus,
    SubscriptionGatewayStatus,
    Payer,
    GatewayPaymentRequest,
    GatewayPaymentResult,
    GatewaySubscriptionRequest,
    GatewaySubscriptionResult,
    WebhookEvent,
)
from .factory import init_gateways, get_gateway, available_gateways


__all__ = [
    "PaymentGateway",
    "StandardStatus",
    "SubscriptionGatewayStatus",
    "Payer",
    "GatewayPaymentRequest",
    "GatewayPaymentResult",
    "GatewaySubscriptionRequest",
    "GatewaySubscriptionResult",
    "WebhookEvent",
    "init_gateways",
    "get_gateway",
    "available_gateways",
]
