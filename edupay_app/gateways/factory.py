# edupay_app/gateways/factory.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app

from ..errors import ConfigurationError
from .base import PaymentGateway
from .mercadopago import MercadoPagoGateway
from .stripe_gateway import StripeGateway

PROVIDERS = {
    MercadoPagoGateway.name: MercadoPagoGateway,
    StripeGateway.name: StripeGateway,
}


def init_gateways(app):
    """Instancia só os PSPs com credencial configurada -> app.extensions["gateways"]."""
    gateways = {}
    for name, cls in PROVIDERS.items():
        gw = cls.from_config(app.config)
        if gw is not None:
            gateways[name] = gw
    app.extensions["gateways"] = gateways
    if not gateways:
        app.logger.warning("Nenhum gateway de pagamento configurado.")
    return gateways


def get_gateway(name: str | None = None) -> PaymentGateway:
    name = (name or current_app.config.get("PAYMENT_PROVIDER") or "").strip().lower()
    gw = (current_app.extensions.get("gateways") or {}).get(name)
    if gw is None:
        raise ConfigurationError(f"Gateway '{name}' não configurado")
    return gw


def available_gateways() -> list[str]:
    return sorted((current_app.extensions.get("gateways") or {}).keys())
