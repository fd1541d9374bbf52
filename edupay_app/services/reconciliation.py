# edupay_app/services/reconciliation.py
# -*- coding: utf-8 -*-
"""
Reconciliação: aplica o status informado pelo PSP a um PaymentRecord, exatamente uma vez.

Webhook e polling chamam a mesma rotina (apply_gateway_status). A única
exclusão mútua é o UPDATE condicional "status = 'PENDING'": quem altera a
linha executa os efeitos (matrícula, crédito do instrutor, uso do cupom) na
mesma transação; quem chega depois afeta zero linhas e não faz nada.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Optional

from flask import current_app
from sqlalchemy import update, or_

from ..errors import GatewayError, NotFound, ReconciliationConflict, ValidationError
from ..extensions import db
from ..gateways import get_gateway, StandardStatus, SubscriptionGatewayStatus, WebhookEvent
from ..models import PaymentRecord, PaymentStatus, SubscriptionRecord, SubscriptionStatus
from ..models.base import utcnow
from ..models.payment import PAYMENT_TYPE_SUBSCRIPTION
from .coupons import redeem_coupon
from .enrollment import grant_enrollment
from .ledger import credit
from .notifications import notify
from .payment_state import is_terminal, next_status, gateway_status_for
from .results import Result


@dataclass
class ReconcileOutcome:
    payment_id: str
    status: str
    transitioned: bool


@dataclass
class StatusReport:
    payment_id: str
    status: str
    stale: bool = False     # True = PSP indisponível, status é o último conhecido


NOTIFY_TEMPLATES = {
    PaymentStatus.COMPLETED: "payment_approved",
    PaymentStatus.FAILED: "payment_failed",
    PaymentStatus.CANCELLED: "payment_cancelled",
}


def _compare_and_set(payment_id: str, new_status: str) -> None:
    res = db.session.execute(
        update(PaymentRecord)
        .where(PaymentRecord.id == payment_id, PaymentRecord.status == PaymentStatus.PENDING)
        .values(status=new_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise ReconciliationConflict(f"Pagamento {payment_id} já saiu de PENDING")


def _on_completed(payment: PaymentRecord) -> None:
    grant_enrollment(payment.user_id, payment.course_id, payment.id)
    if payment.instructor_id:
        credit(payment.instructor_id, payment.instructor_amount, payment.id)
    if payment.coupon_id:
        redeem_coupon(payment.coupon_id, payment.user_id, payment.id, payment.discount_amount)


def apply_gateway_status(payment_id: str, gateway_status: StandardStatus, source: str) -> ReconcileOutcome:
    payment = db.session.get(PaymentRecord, payment_id)
    if payment is None:
        raise NotFound(f"Pagamento {payment_id} não encontrado")

    # idempotência: terminal não reaplica nada
    if is_terminal(payment.status):
        if gateway_status == StandardStatus.REFUNDED and payment.status == PaymentStatus.COMPLETED:
            current_app.logger.warning(
                "PSP reporta estorno do pagamento %s (%s); usar o fluxo de reembolso", payment_id, source
            )
        return ReconcileOutcome(payment_id, payment.status, False)

    new = next_status(payment.status, gateway_status)
    if new is None:
        return ReconcileOutcome(payment_id, payment.status, False)

    try:
        _compare_and_set(payment_id, new)
        db.session.refresh(payment)
        if new == PaymentStatus.COMPLETED:
            _on_completed(payment)
        db.session.commit()
    except ReconciliationConflict:
        db.session.rollback()
        current = db.session.get(PaymentRecord, payment_id)
        current_app.logger.info(
            "Pagamento %s: %s chegou depois (status atual %s)", payment_id, source, current.status
        )
        return ReconcileOutcome(payment_id, current.status, False)
    except Exception:
        # efeito colateral falhou: tudo volta e o registro segue PENDING para o próximo gatilho
        db.session.rollback()
        raise

    current_app.logger.info("Pagamento %s: PENDING -> %s (%s)", payment_id, new, source)
    context = {"payment_id": payment.id, "course_id": payment.course_id, "amount": str(payment.amount)}
    notify(payment.user_id, NOTIFY_TEMPLATES[new], context)
    if new == PaymentStatus.COMPLETED and payment.instructor_id:
        notify(payment.instructor_id, "new_sale", dict(context, instructor_amount=str(payment.instructor_amount)))
    return ReconcileOutcome(payment_id, new, True)


# ---------------------------------------------------------------------
# Gatilho 1: webhook
# ---------------------------------------------------------------------
def _find_payment(provider: str, event: WebhookEvent) -> Optional[PaymentRecord]:
    payment = (
        PaymentRecord.query
        .filter(
            PaymentRecord.gateway_provider == provider,
            or_(
                PaymentRecord.external_payment_id == event.external_id,
                PaymentRecord.external_order_id == event.external_id,
            ),
        )
        .first()
    )
    if payment is None and event.reference:
        payment = db.session.get(PaymentRecord, event.reference)
        if payment is not None and payment.gateway_provider != provider:
            payment = None
    return payment


_SUBSCRIPTION_TO_PAYMENT = {
    SubscriptionGatewayStatus.AUTHORIZED: StandardStatus.APPROVED,
    SubscriptionGatewayStatus.CANCELLED: StandardStatus.CANCELLED,
    SubscriptionGatewayStatus.FINISHED: StandardStatus.CANCELLED,
}


def _apply_subscription_status(sub: SubscriptionRecord, sub_status: SubscriptionGatewayStatus, source: str) -> None:
    new = sub_status.value
    if sub.status in SubscriptionStatus.CLOSED:
        # encerrada não reabre com notificação atrasada
        return
    if sub.status != new:
        current_app.logger.info("Assinatura %s: %s -> %s", sub.id, sub.status, new)
        sub.status = new
        if new == SubscriptionStatus.CANCELLED:
            sub.cancelled_at = utcnow()
        db.session.commit()
    mapped = _SUBSCRIPTION_TO_PAYMENT.get(sub_status)
    if mapped is not None and sub.payment_id:
        apply_gateway_status(sub.payment_id, mapped, source=source)


def _reconcile_subscription(provider: str, event: WebhookEvent) -> None:
    sub = SubscriptionRecord.query.filter_by(
        gateway_provider=provider, external_subscription_id=event.external_id
    ).first()
    if sub is None:
        current_app.logger.warning("Webhook %s: assinatura %s desconhecida", provider, event.external_id)
        return
    _apply_subscription_status(sub, event.subscription_status, f"webhook:{provider}")


def reconcile_webhook(provider: str, payload: bytes, headers: Mapping[str, str], args: Mapping[str, str]) -> Optional[WebhookEvent]:
    """
    Só ValidationError (payload malformado / assinatura inválida) escapa daqui.
    Todo o resto é registrado e confirmado: a correção fica para o próximo poll.
    """
    gateway = get_gateway(provider)
    try:
        event = gateway.process_webhook(payload, headers, args)
    except ValidationError:
        raise
    except GatewayError as e:
        current_app.logger.warning("Webhook %s: consulta ao PSP falhou (%s); fica para o polling", provider, e)
        return None
    if event is None:
        return None

    try:
        if event.kind == "subscription":
            _reconcile_subscription(provider, event)
            return event
        payment = _find_payment(provider, event)
        if payment is None:
            current_app.logger.warning("Webhook %s: pagamento externo %s desconhecido", provider, event.external_id)
            return event
        apply_gateway_status(payment.id, event.status, source=f"webhook:{provider}")
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Webhook %s: falha ao reconciliar %s", provider, event.external_id)
    return event


# ---------------------------------------------------------------------
# Gatilho 2: consulta de status (polling)
# ---------------------------------------------------------------------
def poll_payment_status(payment_id: str) -> StatusReport:
    payment = db.session.get(PaymentRecord, payment_id)
    if payment is None:
        raise NotFound(f"Pagamento {payment_id} não encontrado")
    if is_terminal(payment.status):
        return StatusReport(payment.id, payment.status)
    if payment.payment_type == PAYMENT_TYPE_SUBSCRIPTION:
        return _poll_subscription(payment)
    if not payment.external_payment_id:
        return StatusReport(payment.id, payment.status)

    gateway = get_gateway(payment.gateway_provider)
    try:
        gateway_status = gateway.get_payment_status(payment.external_payment_id)
    except GatewayError as e:
        current_app.logger.warning("Consulta do pagamento %s falhou: %s", payment_id, e)
        return StatusReport(payment.id, payment.status, stale=True)

    outcome = apply_gateway_status(payment.id, gateway_status, source="poll")
    return StatusReport(payment.id, outcome.status)


def _poll_subscription(payment: PaymentRecord) -> StatusReport:
    """Primeira cobrança de assinatura: o PSP só conhece o id da assinatura (external_order_id)."""
    if not payment.external_order_id:
        return StatusReport(payment.id, payment.status)
    payment_id = payment.id
    gateway = get_gateway(payment.gateway_provider)
    try:
        sub_status = gateway.get_subscription_status(payment.external_order_id)
    except GatewayError as e:
        current_app.logger.warning("Consulta da assinatura do pagamento %s falhou: %s", payment_id, e)
        return StatusReport(payment_id, payment.status, stale=True)

    sub = SubscriptionRecord.query.filter_by(payment_id=payment_id).first()
    if sub is not None:
        _apply_subscription_status(sub, sub_status, "poll")
    else:
        mapped = _SUBSCRIPTION_TO_PAYMENT.get(sub_status)
        if mapped is not None:
            apply_gateway_status(payment_id, mapped, source="poll")
    return StatusReport(payment_id, db.session.get(PaymentRecord, payment_id).status)


# ---------------------------------------------------------------------
# Override administrativo (mesma rotina, mesma garantia)
# ---------------------------------------------------------------------
def override_payment_status(payment_id: str, target: str, admin_id: int, note: str = "") -> Result:
    target = (target or "").strip().upper()
    gateway_status = gateway_status_for(target)
    if gateway_status is None:
        raise ValidationError("Status alvo deve ser COMPLETED, FAILED ou CANCELLED")
    payment = db.session.get(PaymentRecord, payment_id)
    if payment is None:
        return Result.not_found("Pagamento não encontrado")
    if is_terminal(payment.status):
        return Result.failure(f"Pagamento já está {payment.status}", "payment_already_final")

    outcome = apply_gateway_status(payment_id, gateway_status, source=f"admin:{admin_id}")
    if not outcome.transitioned:
        return Result.failure(f"Pagamento já está {outcome.status}", "payment_already_final")
    current_app.logger.warning("Override do pagamento %s para %s por admin %s: %s", payment_id, target, admin_id, note)
    return Result.success(db.session.get(PaymentRecord, payment_id))
