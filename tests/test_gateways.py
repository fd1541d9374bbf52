# tests/test_gateways.py
# -*- coding: utf-8 -*-
import hashlib
import hmac
import json
from decimal import Decimal

import pytest
import requests
import stripe
from flask import Flask

from edupay_app.errors import GatewayError, ValidationError, WebhookSignatureError, ConfigurationError
from edupay_app.gateways import (
    StandardStatus, SubscriptionGatewayStatus, Payer, GatewayPaymentRequest,
    init_gateways, get_gateway, available_gateways,
)
from edupay_app.gateways.mercadopago import MercadoPagoGateway, pix_expiration_minutes
from edupay_app.gateways.stripe_gateway import StripeGateway, to_cents


class _Resp:
    def __init__(self, status_code=200, json_data=None, text="OK"):
        self.status_code = status_code
        self._json = json_data or {}
        self.text = text

    def json(self):
        return self._json


def _req(method="PIX", amount="150.00", **kw):
    return GatewayPaymentRequest(
        reference="pay-123",
        amount=Decimal(amount),
        currency="BRL",
        method=method,
        description="Curso de Python",
        payer=Payer("aluno@test.com", "Maria da Silva"),
        **kw,
    )


# =====================================================================================
# Mercado Pago (requests mockado)
# =====================================================================================
@pytest.fixture
def mp():
    return MercadoPagoGateway("TEST-token", api_url="https://mp.test", webhook_secret="")


def test_pix_expiration_by_amount():
    assert pix_expiration_minutes(Decimal("100")) == 10
    assert pix_expiration_minutes(Decimal("100.01")) == 20
    assert pix_expiration_minutes(Decimal("501")) == 30


def test_mp_create_pix(monkeypatch, mp):
    calls = []

    def fake_post(url, headers=None, timeout=None, json=None):
        calls.append((url, headers, json))
        return _Resp(201, {
            "id": 987654,
            "status": "pending",
            "date_of_expiration": "2026-01-01T10:20:00.000+00:00",
            "point_of_interaction": {"transaction_data": {"qr_code": "000201qr", "qr_code_base64": "aGVsbG8="}},
        })
    monkeypatch.setattr(requests, "post", fake_post)

    res = mp.create_payment(_req())
    assert res.external_id == "987654"
    assert res.status == StandardStatus.PENDING
    assert res.payload["pix_qr_code"] == "000201qr"
    assert res.payload["expiration_minutes"] == 20

    url, headers, body = calls[0]
    assert url == "https://mp.test/v1/payments"
    assert headers["X-Idempotency-Key"] == "pay-123"
    assert headers["Authorization"] == "Bearer TEST-token"
    assert body["transaction_amount"] == 150.0
    assert body["external_reference"] == "pay-123"
    assert body["payer"]["first_name"] == "Maria"
    assert body["payer"]["last_name"] == "da Silva"


def test_mp_card_requires_token(monkeypatch, mp):
    monkeypatch.setattr(requests, "post", lambda *a, **k: pytest.fail("não deveria chamar o PSP"))
    with pytest.raises(ValidationError):
        mp.create_payment(_req("CREDIT_CARD"))


def test_mp_card_approved(monkeypatch, mp):
    monkeypatch.setattr(requests, "post", lambda *a, **k: _Resp(201, {"id": 1, "status": "approved", "card": {"last_four_digits": "4242"}}))
    res = mp.create_payment(_req("CREDIT_CARD", card_token="tok_abc", installments=2))
    assert res.status == StandardStatus.APPROVED
    assert res.payload["last_four_digits"] == "4242"


def test_mp_boleto_is_a_preference(monkeypatch, mp):
    monkeypatch.setattr(requests, "post", lambda *a, **k: _Resp(201, {"id": "123-abc", "init_point": "https://mp/checkout"}))
    res = mp.create_payment(_req("BOLETO"))
    assert res.external_id == "123-abc"
    assert res.external_order_id == "123-abc"
    assert res.status == StandardStatus.PENDING
    assert res.payload["checkout_url"] == "https://mp/checkout"


def test_mp_http_errors_become_gateway_error(monkeypatch, mp):
    monkeypatch.setattr(requests, "get", lambda *a, **k: _Resp(500, text="erro interno"))
    with pytest.raises(GatewayError):
        mp.get_payment_status("111")

    def timeout(*a, **k):
        raise requests.Timeout("lento")
    monkeypatch.setattr(requests, "get", timeout)
    with pytest.raises(GatewayError):
        mp.get_payment_status("111")


def test_mp_status_lookup(monkeypatch, mp):
    monkeypatch.setattr(requests, "get", lambda url, **k: _Resp(200, {"status": "rejected"}))
    assert mp.get_payment_status("111") == StandardStatus.REJECTED


def test_mp_preference_status_searches_payments(monkeypatch, mp):
    def fake_get(url, params=None, **k):
        if url.endswith("/checkout/preferences/123-abc"):
            return _Resp(200, {"id": "123-abc", "external_reference": "pay-123"})
        assert url.endswith("/v1/payments/search")
        assert params["external_reference"] == "pay-123"
        return _Resp(200, {"results": found})

    monkeypatch.setattr(requests, "get", fake_get)
    found = []
    assert mp.get_payment_status("123-abc") == StandardStatus.PENDING
    found = [{"status": "approved"}]
    assert mp.get_payment_status("123-abc") == StandardStatus.APPROVED


def test_mp_refund(monkeypatch, mp):
    seen = {}

    def fake_post(url, headers=None, json=None, **k):
        seen.update(url=url, body=json, key=headers.get("X-Idempotency-Key"))
        return _Resp(201, {"id": 555})
    monkeypatch.setattr(requests, "post", fake_post)
    assert mp.refund_payment("111", Decimal("99.90")) == "555"
    assert seen["url"].endswith("/v1/payments/111/refunds")
    assert seen["body"] == {"amount": 99.9}
    assert seen["key"] == "refund-111"


def test_mp_webhook_payment_topic(monkeypatch, mp):
    monkeypatch.setattr(requests, "get", lambda url, **k: _Resp(200, {"status": "approved", "external_reference": "pay-123"}))
    body = json.dumps({"type": "payment", "data": {"id": "111"}}).encode()
    ev = mp.process_webhook(body, {}, {})
    assert ev.kind == "payment"
    assert ev.external_id == "111"
    assert ev.status == StandardStatus.APPROVED
    assert ev.reference == "pay-123"


def test_mp_webhook_legacy_query_and_other_topics(monkeypatch, mp):
    monkeypatch.setattr(requests, "get", lambda url, **k: _Resp(200, {"status": "authorized"}))
    ev = mp.process_webhook(b"", {}, {"topic": "preapproval", "id": "sub-1"})
    assert ev.kind == "subscription"
    assert ev.subscription_status == SubscriptionGatewayStatus.AUTHORIZED
    assert mp.process_webhook(b'{"type": "merchant_order", "data": {"id": "9"}}', {}, {}) is None


def test_mp_webhook_malformed(mp):
    with pytest.raises(ValidationError):
        mp.process_webhook(b"{nao json", {}, {})
    with pytest.raises(ValidationError):
        mp.process_webhook(b'{"type": "payment"}', {}, {})
    for body in (b'{"type": "payment", "data": "123"}', b'{"type": "payment", "data": [123]}'):
        with pytest.raises(ValidationError):
            mp.process_webhook(body, {}, {})


def test_mp_webhook_signature(monkeypatch):
    gw = MercadoPagoGateway("TEST-token", api_url="https://mp.test", webhook_secret="s3cr3t")
    monkeypatch.setattr(requests, "get", lambda url, **k: _Resp(200, {"status": "approved"}))
    body = json.dumps({"type": "payment", "data": {"id": "111"}}).encode()

    manifest = "id:111;request-id:req-1;ts:1700000000;"
    v1 = hmac.new(b"s3cr3t", manifest.encode(), hashlib.sha256).hexdigest()
    ok = gw.process_webhook(body, {"x-signature": f"ts=1700000000,v1={v1}", "x-request-id": "req-1"}, {})
    assert ok.status == StandardStatus.APPROVED

    with pytest.raises(WebhookSignatureError):
        gw.process_webhook(body, {"x-signature": "ts=1700000000,v1=deadbeef", "x-request-id": "req-1"}, {})
    with pytest.raises(WebhookSignatureError):
        gw.process_webhook(body, {}, {})


def test_mp_subscription(monkeypatch, mp):
    seen = {}

    def fake_post(url, json=None, **k):
        seen.update(url=url, body=json)
        return _Resp(201, {"id": "sub-1", "status": "authorized", "init_point": "https://mp/sub"})
    monkeypatch.setattr(requests, "post", fake_post)
    monkeypatch.setattr(requests, "put", lambda url, **k: _Resp(200, {"status": "cancelled"}))

    from edupay_app.gateways import GatewaySubscriptionRequest
    res = mp.create_subscription(GatewaySubscriptionRequest(
        reference="sub-local", amount=Decimal("29.90"), currency="BRL", reason="Mensal",
        payer=Payer("aluno@test.com"), card_token="tok",
    ))
    assert res.status == SubscriptionGatewayStatus.AUTHORIZED
    assert seen["body"]["auto_recurring"]["transaction_amount"] == 29.9
    assert seen["body"]["card_token_id"] == "tok"
    assert mp.cancel_subscription("sub-1") == SubscriptionGatewayStatus.CANCELLED


# =====================================================================================
# Stripe (SDK mockado)
# =====================================================================================
@pytest.fixture
def st():
    return StripeGateway("sk_test_123", webhook_secret="whsec_test")


def test_to_cents():
    assert to_cents(Decimal("100.50")) == 10050
    assert to_cents(Decimal("0.01")) == 1


def test_stripe_card_payment(monkeypatch, st):
    seen = {}

    def fake_create(**params):
        seen.update(params)
        return {"id": "pi_1", "status": "succeeded", "client_secret": "cs_1"}
    monkeypatch.setattr(stripe.PaymentIntent, "create", staticmethod(fake_create))

    res = st.create_payment(_req("CREDIT_CARD", amount="100.50", card_token="pm_card_visa"))
    assert res.external_id == "pi_1"
    assert res.status == StandardStatus.APPROVED
    assert seen["amount"] == 10050
    assert seen["currency"] == "brl"
    assert seen["payment_method_types"] == ["card"]
    assert seen["confirm"] is True
    assert seen["idempotency_key"] == "pay-123"
    assert stripe.api_key == "sk_test_123"


def test_stripe_pix_exposes_qr(monkeypatch, st):
    monkeypatch.setattr(stripe.PaymentIntent, "create", staticmethod(lambda **p: {
        "id": "pi_2", "status": "requires_action",
        "next_action": {"pix_display_qr_code": {"data": "000201pix", "image_url_png": "https://qr"}},
    }))
    res = st.create_payment(_req("PIX"))
    assert res.status == StandardStatus.PENDING
    assert res.payload["pix_qr_code"] == "000201pix"


def test_stripe_errors_become_gateway_error(monkeypatch, st):
    def boom(*a, **k):
        raise stripe.StripeError("cartão recusado")
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", staticmethod(boom))
    with pytest.raises(GatewayError):
        st.get_payment_status("pi_1")


def test_stripe_refund(monkeypatch, st):
    seen = {}

    def fake_refund(**params):
        seen.update(params)
        return {"id": "re_1"}
    monkeypatch.setattr(stripe.Refund, "create", staticmethod(fake_refund))
    assert st.refund_payment("pi_1", Decimal("10")) == "re_1"
    assert seen["payment_intent"] == "pi_1"
    assert seen["amount"] == 1000


def test_stripe_webhook_events(monkeypatch, st):
    events = iter([
        {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1", "metadata": {"payment_id": "pay-123"}}}},
        {"type": "charge.refunded", "data": {"object": {"id": "ch_1", "payment_intent": "pi_1"}}},
        {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_1", "status": "canceled"}}},
        {"type": "invoice.created", "data": {"object": {"id": "in_1"}}},
    ])
    monkeypatch.setattr(stripe.Webhook, "construct_event", staticmethod(lambda payload, sig, secret: next(events)))

    ev = st.process_webhook(b"{}", {"Stripe-Signature": "t=1,v1=x"}, {})
    assert (ev.kind, ev.external_id, ev.status, ev.reference) == ("payment", "pi_1", StandardStatus.APPROVED, "pay-123")
    ev = st.process_webhook(b"{}", {}, {})
    assert ev.status == StandardStatus.REFUNDED
    ev = st.process_webhook(b"{}", {}, {})
    assert ev.kind == "subscription"
    assert ev.subscription_status == SubscriptionGatewayStatus.CANCELLED
    assert st.process_webhook(b"{}", {}, {}) is None


def test_stripe_webhook_bad_signature(monkeypatch, st):
    def bad(payload, sig, secret):
        raise stripe.SignatureVerificationError("assinatura não confere", sig)
    monkeypatch.setattr(stripe.Webhook, "construct_event", staticmethod(bad))
    with pytest.raises(WebhookSignatureError):
        st.process_webhook(b"{}", {"Stripe-Signature": "t=1,v1=x"}, {})

    def bad_json(payload, sig, secret):
        raise ValueError("json")
    monkeypatch.setattr(stripe.Webhook, "construct_event", staticmethod(bad_json))
    with pytest.raises(ValidationError):
        st.process_webhook(b"{", {}, {})


# =====================================================================================
# Registro de gateways
# =====================================================================================
def test_init_gateways_only_configured():
    flask_app = Flask(__name__)
    flask_app.config.update(MERCADOPAGO_ACCESS_TOKEN="TEST-1", STRIPE_SECRET_KEY="", PAYMENT_PROVIDER="mercadopago")
    gateways = init_gateways(flask_app)
    assert list(gateways) == ["mercadopago"]
    with flask_app.app_context():
        assert isinstance(get_gateway(), MercadoPagoGateway)
        assert available_gateways() == ["mercadopago"]
        with pytest.raises(ConfigurationError):
            get_gateway("stripe")
