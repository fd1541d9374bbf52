# edupay_app/gateways/mercadopago.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Mapping, Optional

import requests

from ..errors import GatewayError, ValidationError, WebhookSignatureError
from .base import (
    PaymentGateway, StandardStatus, SubscriptionGatewayStatus, GatewayPaymentRequest,
    GatewayPaymentResult, GatewaySubscriptionRequest, GatewaySubscriptionResult, WebhookEvent,
    to_standard_status, to_subscription_status,
)

STATUS_MAP = {
    "pending": StandardStatus.PENDING,
    "approved": StandardStatus.APPROVED,
    "authorized": StandardStatus.APPROVED,
    "in_process": StandardStatus.PENDING,
    "in_mediation": StandardStatus.PENDING,
    "rejected": StandardStatus.REJECTED,
    "cancelled": StandardStatus.CANCELLED,
    "refunded": StandardStatus.REFUNDED,
    "charged_back": StandardStatus.REFUNDED,
}

SUBSCRIPTION_STATUS_MAP = {
    "pending": SubscriptionGatewayStatus.PENDING,
    "authorized": SubscriptionGatewayStatus.AUTHORIZED,
    "paused": SubscriptionGatewayStatus.PAUSED,
    "cancelled": SubscriptionGatewayStatus.CANCELLED,
    "finished": SubscriptionGatewayStatus.FINISHED,
}

PAYMENT_TOPICS = ("payment",)
SUBSCRIPTION_TOPICS = ("subscription_preapproval", "preapproval")


def pix_expiration_minutes(amount: Decimal) -> int:
    if amount <= 100:
        return 10
    if amount <= 500:
        return 20
    return 30


def _split_name(name: str) -> tuple[str, str]:
    parts = (name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class MercadoPagoGateway(PaymentGateway):
    name = "mercadopago"

    def __init__(self, access_token: str, api_url: str = "https://api.mercadopago.com",
                 timeout: int = 5, webhook_secret: str = ""):
        self.access_token = access_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.webhook_secret = webhook_secret

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> Optional["MercadoPagoGateway"]:
        token = config.get("MERCADOPAGO_ACCESS_TOKEN")
        if not token:
            return None
        return cls(
            token,
            api_url=config.get("MERCADOPAGO_API_URL") or "https://api.mercadopago.com",
            timeout=int(config.get("MERCADOPAGO_TIMEOUT") or 5),
            webhook_secret=config.get("MERCADOPAGO_WEBHOOK_SECRET") or "",
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    def _headers(self, idempotency_key: str | None = None) -> dict:
        h = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            h["X-Idempotency-Key"] = idempotency_key
        return h

    def _call(self, method: str, path: str, idempotency_key: str | None = None, **kwargs) -> dict:
        url = f"{self.api_url}{path}"
        try:
            resp = getattr(requests, method)(
                url, headers=self._headers(idempotency_key), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise GatewayError(f"Mercado Pago indisponível: {e}", provider=self.name) from e
        if resp.status_code >= 400:
            raise GatewayError(
                f"Mercado Pago respondeu {resp.status_code}: {(resp.text or '')[:200]}",
                provider=self.name,
            )
        try:
            return resp.json() or {}
        except ValueError as e:
            raise GatewayError("Resposta inválida do Mercado Pago", provider=self.name) from e

    # ------------------------------------------------------------------
    # Pagamentos
    # ------------------------------------------------------------------
    def create_payment(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        if req.method == "PIX":
            return self._create_pix(req)
        if req.method in ("CREDIT_CARD", "DEBIT_CARD"):
            return self._create_card(req)
        if req.method == "BOLETO":
            return self._create_boleto(req)
        raise ValidationError(f"Método de pagamento {req.method} não suportado")

    def _payer(self, req: GatewayPaymentRequest) -> dict:
        first, last = _split_name(req.payer.name)
        payer = {"email": req.payer.email, "first_name": first, "last_name": last}
        if req.payer.identification_number:
            payer["identification"] = {
                "type": req.payer.identification_type or "CPF",
                "number": req.payer.identification_number,
            }
        return payer

    def _create_pix(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        minutes = pix_expiration_minutes(req.amount)
        expires = datetime.now(timezone.utc) + timedelta(minutes=minutes)
        body = {
            "transaction_amount": float(req.amount),
            "payment_method_id": "pix",
            "description": req.description,
            "payer": self._payer(req),
            "external_reference": req.reference,
            # sempre UTC para evitar problema de fuso
            "date_of_expiration": expires.strftime("%Y-%m-%dT%H:%M:%S.000+00:00"),
            "metadata": {"payment_id": req.reference},
        }
        if req.notification_url:
            body["notification_url"] = req.notification_url
        data = self._call("post", "/v1/payments", idempotency_key=req.reference, json=body)
        tx = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
        return GatewayPaymentResult(
            external_id=str(data["id"]),
            status=to_standard_status(STATUS_MAP, data.get("status")),
            payload={
                "pix_qr_code": tx.get("qr_code"),
                "pix_qr_code_base64": tx.get("qr_code_base64"),
                "ticket_url": tx.get("ticket_url"),
                "expiration_date": data.get("date_of_expiration"),
                "expiration_minutes": minutes,
            },
        )

    def _create_card(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        if not req.card_token:
            raise ValidationError("Token do cartão é obrigatório")
        body = {
            "transaction_amount": float(req.amount),
            "token": req.card_token,
            "description": req.description,
            "installments": req.installments or 1,
            "payer": self._payer(req),
            "external_reference": req.reference,
            "metadata": {"payment_id": req.reference},
        }
        if req.card_brand:
            body["payment_method_id"] = req.card_brand
        if req.notification_url:
            body["notification_url"] = req.notification_url
        data = self._call("post", "/v1/payments", idempotency_key=req.reference, json=body)
        card = data.get("card") or {}
        return GatewayPaymentResult(
            external_id=str(data["id"]),
            status=to_standard_status(STATUS_MAP, data.get("status")),
            payload={
                "status_detail": data.get("status_detail"),
                "authorization_code": data.get("authorization_code"),
                "last_four_digits": card.get("last_four_digits"),
            },
        )

    def _create_boleto(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        body = {
            "items": [{
                "id": req.reference,
                "title": req.description,
                "currency_id": req.currency,
                "quantity": 1,
                "unit_price": float(req.amount),
            }],
            "payer": {"email": req.payer.email, "name": req.payer.name},
            "payment_methods": {
                "excluded_payment_types": [
                    {"id": "credit_card"},
                    {"id": "debit_card"},
                    {"id": "bank_transfer"},
                ],
                "installments": 1,
            },
            "external_reference": req.reference,
            "metadata": {"payment_id": req.reference},
        }
        if req.notification_url:
            body["notification_url"] = req.notification_url
        data = self._call("post", "/checkout/preferences", idempotency_key=req.reference, json=body)
        return GatewayPaymentResult(
            external_id=str(data["id"]),
            external_order_id=str(data["id"]),
            status=StandardStatus.PENDING,
            payload={
                "checkout_url": data.get("init_point"),
                "sandbox_url": data.get("sandbox_init_point"),
            },
        )

    def get_payment_status(self, external_id: str) -> StandardStatus:
        # preferências (boleto) têm "-" no id; pagamentos diretos (PIX/cartão) são numéricos
        if "-" in external_id:
            return self._preference_status(external_id)
        data = self._call("get", f"/v1/payments/{external_id}")
        return to_standard_status(STATUS_MAP, data.get("status"))

    def _preference_status(self, preference_id: str) -> StandardStatus:
        pref = self._call("get", f"/checkout/preferences/{preference_id}")
        reference = pref.get("external_reference") or preference_id
        found = self._call(
            "get", "/v1/payments/search",
            params={"external_reference": reference, "sort": "date_created", "criteria": "desc"},
        )
        results = found.get("results") or []
        if not results:
            # preferência existe mas ainda não foi paga
            return StandardStatus.PENDING
        return to_standard_status(STATUS_MAP, results[0].get("status"))

    def refund_payment(self, external_id: str, amount: Decimal) -> str:
        data = self._call(
            "post", f"/v1/payments/{external_id}/refunds",
            idempotency_key=f"refund-{external_id}",
            json={"amount": float(amount)},
        )
        return str(data.get("id", ""))

    # ------------------------------------------------------------------
    # Assinaturas (preapproval)
    # ------------------------------------------------------------------
    def create_subscription(self, req: GatewaySubscriptionRequest) -> GatewaySubscriptionResult:
        body = {
            "reason": req.reason,
            "external_reference": req.reference,
            "payer_email": req.payer.email,
            "auto_recurring": {
                "frequency": req.frequency,
                "frequency_type": req.frequency_type,
                "transaction_amount": float(req.amount),
                "currency_id": req.currency,
            },
            "status": "authorized" if req.card_token else "pending",
        }
        if req.card_token:
            body["card_token_id"] = req.card_token
        if req.back_url:
            body["back_url"] = req.back_url
        data = self._call("post", "/preapproval", idempotency_key=req.reference, json=body)
        return GatewaySubscriptionResult(
            external_id=str(data["id"]),
            status=to_subscription_status(SUBSCRIPTION_STATUS_MAP, data.get("status")),
            payload={"init_point": data.get("init_point"), "next_payment_date": data.get("next_payment_date")},
        )

    def get_subscription_status(self, external_id: str) -> SubscriptionGatewayStatus:
        data = self._call("get", f"/preapproval/{external_id}")
        return to_subscription_status(SUBSCRIPTION_STATUS_MAP, data.get("status"))

    def cancel_subscription(self, external_id: str) -> SubscriptionGatewayStatus:
        data = self._call("put", f"/preapproval/{external_id}", json={"status": "cancelled"})
        return to_subscription_status(SUBSCRIPTION_STATUS_MAP, data.get("status") or "cancelled")

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------
    def _check_signature(self, data_id: str, headers: Mapping[str, str]) -> None:
        """x-signature: "ts=...,v1=..." sobre o manifest id/request-id/ts."""
        if not self.webhook_secret:
            return
        parts = dict(
            p.strip().split("=", 1) for p in (headers.get("x-signature") or "").split(",") if "=" in p
        )
        ts, v1 = parts.get("ts"), parts.get("v1")
        if not ts or not v1:
            raise WebhookSignatureError("Assinatura do webhook ausente")
        manifest = f"id:{data_id};request-id:{headers.get('x-request-id', '')};ts:{ts};"
        expected = hmac.new(self.webhook_secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, v1):
            raise WebhookSignatureError("Assinatura do webhook inválida")

    def process_webhook(self, payload: bytes, headers: Mapping[str, str], args: Mapping[str, str]) -> Optional[WebhookEvent]:
        body: dict = {}
        if payload:
            try:
                body = json.loads(payload)
            except ValueError as e:
                raise ValidationError("Webhook com JSON inválido") from e
            if not isinstance(body, dict):
                raise ValidationError("Webhook com corpo inesperado")

        # formato novo: {"type": "payment", "data": {"id": ...}}; legado: ?topic=payment&id=...
        topic = body.get("type") or body.get("topic") or args.get("type") or args.get("topic")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise ValidationError("Webhook com campo data inesperado")
        data_id = data.get("id") or args.get("data.id") or args.get("id")
        if not topic or not data_id:
            raise ValidationError("Webhook sem tipo ou id")
        data_id = str(data_id)
        self._check_signature(data_id, headers)

        if topic in PAYMENT_TOPICS:
            data = self._call("get", f"/v1/payments/{data_id}")
            return WebhookEvent(
                kind="payment",
                external_id=data_id,
                status=to_standard_status(STATUS_MAP, data.get("status")),
                reference=data.get("external_reference"),
            )
        if topic in SUBSCRIPTION_TOPICS:
            return WebhookEvent(
                kind="subscription",
                external_id=data_id,
                subscription_status=self.get_subscription_status(data_id),
            )
        # merchant_order, plan etc.: só confirma recebimento
        return None
