# edupay_app/gateways/stripe_gateway.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from decimal import Decimal
from typing import Any, Mapping, Optional

import stripe

from ..errors import GatewayError, ValidationError, WebhookSignatureError
from .base import (
    PaymentGateway, StandardStatus, SubscriptionGatewayStatus, GatewayPaymentRequest,
    GatewayPaymentResult, GatewaySubscriptionRequest, GatewaySubscriptionResult, WebhookEvent,
    to_standard_status, to_subscription_status,
)

# PaymentIntent.status
STATUS_MAP = {
    "succeeded": StandardStatus.APPROVED,
    "canceled": StandardStatus.CANCELLED,
    "processing": StandardStatus.PENDING,
    "requires_payment_method": StandardStatus.PENDING,
    "requires_confirmation": StandardStatus.PENDING,
    "requires_action": StandardStatus.PENDING,
    "requires_capture": StandardStatus.PENDING,
}

SUBSCRIPTION_STATUS_MAP = {
    "incomplete": SubscriptionGatewayStatus.PENDING,
    "trialing": SubscriptionGatewayStatus.AUTHORIZED,
    "active": SubscriptionGatewayStatus.AUTHORIZED,
    "past_due": SubscriptionGatewayStatus.PAUSED,
    "unpaid": SubscriptionGatewayStatus.PAUSED,
    "paused": SubscriptionGatewayStatus.PAUSED,
    "canceled": SubscriptionGatewayStatus.CANCELLED,
    "incomplete_expired": SubscriptionGatewayStatus.CANCELLED,
}

# eventos de PaymentIntent que já trazem o status final
EVENT_STATUS = {
    "payment_intent.succeeded": StandardStatus.APPROVED,
    "payment_intent.payment_failed": StandardStatus.REJECTED,
    "payment_intent.canceled": StandardStatus.CANCELLED,
    "payment_intent.processing": StandardStatus.PENDING,
}

METHOD_TYPES = {
    "PIX": "pix",
    "CREDIT_CARD": "card",
    "DEBIT_CARD": "card",
    "BOLETO": "boleto",
}

INTERVALS = {"days": "day", "months": "month"}


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(self, secret_key: str, webhook_secret: str = ""):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> Optional["StripeGateway"]:
        key = config.get("STRIPE_SECRET_KEY")
        if not key:
            return None
        return cls(key, webhook_secret=config.get("STRIPE_WEBHOOK_SECRET") or "")

    def _stripe(self):
        stripe.api_key = self.secret_key
        return stripe

    def _wrap(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except stripe.StripeError as e:
            raise GatewayError(f"Stripe: {e.user_message or e}", provider=self.name) from e

    # ------------------------------------------------------------------
    # Pagamentos
    # ------------------------------------------------------------------
    def create_payment(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        method_type = METHOD_TYPES.get(req.method)
        if method_type is None:
            raise ValidationError(f"Método de pagamento {req.method} não suportado")
        s = self._stripe()
        params = {
            "amount": to_cents(req.amount),
            "currency": req.currency.lower(),
            "payment_method_types": [method_type],
            "description": req.description,
            "receipt_email": req.payer.email,
            "metadata": {"payment_id": req.reference},
            "idempotency_key": req.reference,
        }
        if method_type == "card":
            if not req.card_token:
                raise ValidationError("Token do cartão é obrigatório")
            params["payment_method"] = req.card_token
            params["confirm"] = True
        intent = self._wrap(s.PaymentIntent.create, **params)
        payload = {"client_secret": intent.get("client_secret")}
        next_action = intent.get("next_action") or {}
        if next_action.get("pix_display_qr_code"):
            qr = next_action["pix_display_qr_code"]
            payload.update(pix_qr_code=qr.get("data"), pix_qr_code_image=qr.get("image_url_png"))
        if next_action.get("boleto_display_details"):
            payload["boleto_url"] = next_action["boleto_display_details"].get("hosted_voucher_url")
        return GatewayPaymentResult(
            external_id=intent["id"],
            status=to_standard_status(STATUS_MAP, intent.get("status")),
            payload=payload,
        )

    def get_payment_status(self, external_id: str) -> StandardStatus:
        s = self._stripe()
        intent = self._wrap(s.PaymentIntent.retrieve, external_id)
        return to_standard_status(STATUS_MAP, intent.get("status"))

    def refund_payment(self, external_id: str, amount: Decimal) -> str:
        s = self._stripe()
        refund = self._wrap(
            s.Refund.create,
            payment_intent=external_id,
            amount=to_cents(amount),
            idempotency_key=f"refund-{external_id}",
        )
        return refund["id"]

    # ------------------------------------------------------------------
    # Assinaturas
    # ------------------------------------------------------------------
    def create_subscription(self, req: GatewaySubscriptionRequest) -> GatewaySubscriptionResult:
        s = self._stripe()
        customer_params = {
            "email": req.payer.email,
            "name": req.payer.name,
            "metadata": {"subscription_id": req.reference},
        }
        if req.card_token:
            customer_params["payment_method"] = req.card_token
            customer_params["invoice_settings"] = {"default_payment_method": req.card_token}
        customer = self._wrap(s.Customer.create, **customer_params)
        product = self._wrap(s.Product.create, name=req.reason)
        sub = self._wrap(
            s.Subscription.create,
            customer=customer["id"],
            items=[{
                "price_data": {
                    "currency": req.currency.lower(),
                    "product": product["id"],
                    "unit_amount": to_cents(req.amount),
                    "recurring": {
                        "interval": INTERVALS.get(req.frequency_type, "month"),
                        "interval_count": req.frequency,
                    },
                },
            }],
            payment_behavior="default_incomplete",
            metadata={"subscription_id": req.reference},
            idempotency_key=req.reference,
        )
        return GatewaySubscriptionResult(
            external_id=sub["id"],
            status=to_subscription_status(SUBSCRIPTION_STATUS_MAP, sub.get("status")),
            payload={"customer_id": customer["id"]},
        )

    def get_subscription_status(self, external_id: str) -> SubscriptionGatewayStatus:
        s = self._stripe()
        sub = self._wrap(s.Subscription.retrieve, external_id)
        return to_subscription_status(SUBSCRIPTION_STATUS_MAP, sub.get("status"))

    def cancel_subscription(self, external_id: str) -> SubscriptionGatewayStatus:
        s = self._stripe()
        sub = self._wrap(s.Subscription.cancel, external_id)
        return to_subscription_status(SUBSCRIPTION_STATUS_MAP, sub.get("status") or "canceled")

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------
    def process_webhook(self, payload: bytes, headers: Mapping[str, str], args: Mapping[str, str]) -> Optional[WebhookEvent]:
        s = self._stripe()
        sig = headers.get("Stripe-Signature", "")
        try:
            event = s.Webhook.construct_event(payload, sig, self.webhook_secret)
        except ValueError as e:
            raise ValidationError("Webhook com JSON inválido") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Assinatura do webhook inválida") from e

        typ = event["type"]
        obj = event["data"]["object"]
        if typ in EVENT_STATUS:
            return WebhookEvent(
                kind="payment",
                external_id=obj["id"],
                status=EVENT_STATUS[typ],
                reference=(obj.get("metadata") or {}).get("payment_id"),
            )
        if typ == "charge.refunded" and obj.get("payment_intent"):
            return WebhookEvent(kind="payment", external_id=obj["payment_intent"], status=StandardStatus.REFUNDED)
        if typ.startswith("customer.subscription."):
            return WebhookEvent(
                kind="subscription",
                external_id=obj["id"],
                subscription_status=to_subscription_status(SUBSCRIPTION_STATUS_MAP, obj.get("status")),
            )
        return None
