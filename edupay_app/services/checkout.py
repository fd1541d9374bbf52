# edupay_app/services/checkout.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from flask import current_app

from calc import ZERO
from ..errors import GatewayError, ValidationError
from ..extensions import db
from ..gateways import (
    get_gateway, Payer, GatewayPaymentRequest, GatewaySubscriptionRequest,
    StandardStatus, SubscriptionGatewayStatus,
)
from ..models import PaymentRecord, PaymentStatus, SubscriptionRecord, SubscriptionStatus, SavedCard
from ..models.base import utcnow
from ..models.payment import (
    PAYMENT_METHODS, CARD_METHODS, PAYMENT_TYPE_SUBSCRIPTION, INTERNAL_PROVIDER,
)
from .calc_service import get_calculator
from .catalog import get_course, get_user
from .coupons import validate_coupon, coupon_terms
from .enrollment import is_enrolled
from .polling import schedule_status_poll
from .reconciliation import apply_gateway_status
from .results import Result

FREQUENCY_TYPES = ("days", "months")


@dataclass(frozen=True)
class PurchaseRequest:
    user_id: int
    course_id: int
    payment_method: str
    coupon_code: Optional[str] = None
    card_token: Optional[str] = None
    card_brand: Optional[str] = None
    saved_card_id: Optional[int] = None
    installments: int = 1
    provider: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionRequest:
    user_id: int
    course_id: int
    frequency: int = 1
    frequency_type: str = "months"
    card_token: Optional[str] = None
    provider: Optional[str] = None


def _notification_url(provider: str) -> str:
    return f"{current_app.config['API_BASE_URL'].rstrip('/')}/webhooks/{provider}"


def _check_buyer(user_id: int, course_id: int):
    user = get_user(user_id)
    if user is None or not user.active:
        return None, None, Result.forbidden("Usuário inativo ou inexistente", "user_inactive")
    course = get_course(course_id)
    if course is None or not course.published:
        return None, None, Result.not_found("Curso não encontrado", "course_not_found")
    if course.instructor_id == user_id:
        return None, None, Result.failure("Instrutor não compra o próprio curso", "own_course")
    if is_enrolled(user_id, course_id):
        return None, None, Result.failure("Você já tem acesso a este curso", "already_enrolled", status=409)
    return user, course, None


def create_purchase(req: PurchaseRequest) -> Result:
    """
    Compra avulsa: calcula valores, registra PENDING, cria o pagamento no PSP.
    Falha do PSP sobe como GatewayError e o registro fica PENDING, sem id externo;
    a próxima tentativa do aluno reaproveita o mesmo registro (mesma chave de idempotência).
    """
    method = (req.payment_method or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method deve ser um de {', '.join(PAYMENT_METHODS)}")
    if method in CARD_METHODS and not req.card_token:
        raise ValidationError("Token do cartão é obrigatório para pagamento com cartão")
    if req.installments < 1 or req.installments > 12:
        raise ValidationError("Parcelas devem estar entre 1 e 12")

    user, course, failure = _check_buyer(req.user_id, req.course_id)
    if failure:
        return failure

    payer = Payer(email=user.email, name=user.name)
    if req.saved_card_id is not None:
        card = SavedCard.query.filter_by(id=req.saved_card_id, user_id=req.user_id).first()
        if card is None:
            return Result.not_found("Cartão salvo não encontrado", "card_not_found")
        if method not in CARD_METHODS:
            raise ValidationError("Cartão salvo só vale para pagamento com cartão")
        payer = Payer(user.email, card.card_holder_name, card.identification_type, card.identification_number)

    coupon = None
    if req.coupon_code:
        check = validate_coupon(req.coupon_code, req.user_id, req.course_id)
        if not check.ok:
            return check
        coupon = check.value
    breakdown = get_calculator().calculate(course.price, coupon_terms(coupon))

    pending = PaymentRecord.query.filter_by(
        user_id=req.user_id, course_id=req.course_id, status=PaymentStatus.PENDING
    ).order_by(PaymentRecord.created_at.desc()).first()
    if pending is not None and pending.external_payment_id:
        return Result.failure(
            "Já existe um pagamento pendente para este curso", "payment_pending", status=409,
            value={"payment_id": pending.id},
        )

    zero_total = breakdown.total <= ZERO
    provider = INTERNAL_PROVIDER if zero_total else (req.provider or current_app.config["PAYMENT_PROVIDER"]).lower()
    gateway = None if zero_total else get_gateway(provider)   # falha cedo se não configurado

    payment = pending or PaymentRecord(user_id=req.user_id, course_id=req.course_id)
    payment.instructor_id = course.instructor_id
    payment.amount = breakdown.total
    payment.original_amount = breakdown.original
    payment.discount_amount = breakdown.discount
    payment.platform_fee_amount = breakdown.platform_fee
    payment.instructor_amount = breakdown.instructor_amount
    payment.currency = current_app.config["PAYMENT_CURRENCY"]
    payment.coupon_id = coupon.id if coupon else None
    payment.payment_method = method
    payment.gateway_provider = provider
    db.session.add(payment)
    db.session.commit()

    if zero_total:
        # cupom de 100%: sem PSP, confirma pela mesma rotina de reconciliação
        apply_gateway_status(payment.id, StandardStatus.APPROVED, source="coupon")
        return Result.success({"payment": db.session.get(PaymentRecord, payment.id).to_dict(), "payment_data": {}}, status=201)

    gw_req = GatewayPaymentRequest(
        reference=payment.id,
        amount=breakdown.total,
        currency=payment.currency,
        method=method,
        description=course.title,
        payer=payer,
        card_token=req.card_token,
        card_brand=req.card_brand,
        installments=req.installments,
        notification_url=_notification_url(provider),
    )
    try:
        result = gateway.create_payment(gw_req)
    except GatewayError:
        current_app.logger.warning("Criação do pagamento %s no %s falhou; registro segue PENDING", payment.id, provider)
        raise

    payment.external_payment_id = result.external_id
    payment.external_order_id = result.external_order_id
    payment.gateway_payload = result.payload
    db.session.commit()
    current_app.logger.info(
        "Pagamento %s criado no %s (%s, %s) status %s",
        payment.id, provider, method, payment.amount, result.status.value,
    )

    if result.status != StandardStatus.PENDING:
        # cartão costuma voltar aprovado/recusado na hora
        apply_gateway_status(payment.id, result.status, source="checkout")
    else:
        schedule_status_poll(payment.id)

    payment = db.session.get(PaymentRecord, payment.id)
    return Result.success({"payment": payment.to_dict(), "payment_data": result.payload}, status=201)


def quote(user_id: int, course_id: int, coupon_code: str | None = None) -> Result:
    course = get_course(course_id)
    if course is None or not course.published:
        return Result.not_found("Curso não encontrado", "course_not_found")
    coupon = None
    if coupon_code:
        check = validate_coupon(coupon_code, user_id, course_id)
        if not check.ok:
            return check
        coupon = check.value
    return Result.success(get_calculator().calculate(course.price, coupon_terms(coupon)))


# ---------------------------------------------------------------------
# Assinaturas
# ---------------------------------------------------------------------
def create_subscription(req: SubscriptionRequest) -> Result:
    if req.frequency_type not in FREQUENCY_TYPES:
        raise ValidationError("frequency_type deve ser days ou months")
    if req.frequency < 1:
        raise ValidationError("frequency deve ser positiva")

    user, course, failure = _check_buyer(req.user_id, req.course_id)
    if failure:
        return failure
    active = SubscriptionRecord.query.filter(
        SubscriptionRecord.user_id == req.user_id,
        SubscriptionRecord.course_id == req.course_id,
        SubscriptionRecord.status.in_(SubscriptionStatus.ACTIVE),
    ).first()
    if active is not None and active.external_subscription_id:
        return Result.failure(
            "Já existe uma assinatura ativa para este curso", "subscription_exists", status=409,
            value={"subscription_id": active.id},
        )

    provider = (req.provider or current_app.config["PAYMENT_PROVIDER"]).lower()
    gateway = get_gateway(provider)
    breakdown = get_calculator().calculate(course.price)

    # tentativa anterior caiu no PSP antes de gerar id externo: reaproveita os registros
    sub = active
    payment = db.session.get(PaymentRecord, sub.payment_id) if sub is not None and sub.payment_id else None
    if payment is None or payment.status != PaymentStatus.PENDING:
        payment = PaymentRecord(user_id=req.user_id, course_id=req.course_id)
        db.session.add(payment)
    payment.instructor_id = course.instructor_id
    payment.amount = breakdown.total
    payment.original_amount = breakdown.original
    payment.discount_amount = breakdown.discount
    payment.platform_fee_amount = breakdown.platform_fee
    payment.instructor_amount = breakdown.instructor_amount
    payment.currency = current_app.config["PAYMENT_CURRENCY"]
    payment.payment_type = PAYMENT_TYPE_SUBSCRIPTION
    payment.payment_method = "CREDIT_CARD"
    payment.gateway_provider = provider
    db.session.flush()
    if sub is None:
        sub = SubscriptionRecord(user_id=req.user_id, course_id=req.course_id)
        db.session.add(sub)
    sub.payment_id = payment.id
    sub.frequency = req.frequency
    sub.frequency_type = req.frequency_type
    sub.amount = breakdown.total
    sub.currency = payment.currency
    sub.gateway_provider = provider
    db.session.commit()

    try:
        result = gateway.create_subscription(GatewaySubscriptionRequest(
            reference=sub.id,
            amount=breakdown.total,
            currency=sub.currency,
            reason=course.title,
            payer=Payer(email=user.email, name=user.name),
            frequency=req.frequency,
            frequency_type=req.frequency_type,
            card_token=req.card_token,
            back_url=f"{current_app.config['FRONTEND_URL'].rstrip('/')}/courses/{course.id}",
        ))
    except GatewayError:
        current_app.logger.warning("Criação da assinatura %s no %s falhou; nova tentativa reaproveita", sub.id, provider)
        raise
    sub.external_subscription_id = result.external_id
    sub.status = result.status.value
    sub.gateway_payload = result.payload
    # o "pagamento" da assinatura é acompanhado pelo id da assinatura no PSP
    payment.external_order_id = result.external_id
    db.session.commit()
    current_app.logger.info("Assinatura %s criada no %s status %s", sub.id, provider, sub.status)

    if result.status == SubscriptionGatewayStatus.AUTHORIZED:
        apply_gateway_status(payment.id, StandardStatus.APPROVED, source="checkout")
    elif result.status == SubscriptionGatewayStatus.PENDING:
        schedule_status_poll(payment.id)
    return Result.success({"subscription": sub.to_dict(), "payment_data": result.payload}, status=201)


def cancel_subscription(user_id: int, subscription_id: str, is_admin: bool = False) -> Result:
    sub = db.session.get(SubscriptionRecord, subscription_id)
    if sub is None:
        return Result.not_found("Assinatura não encontrada")
    if sub.user_id != user_id and not is_admin:
        return Result.forbidden()
    if sub.status not in SubscriptionStatus.ACTIVE:
        return Result.failure(f"Assinatura já está {sub.status}", "subscription_closed")

    if sub.external_subscription_id:
        get_gateway(sub.gateway_provider).cancel_subscription(sub.external_subscription_id)
    sub.status = SubscriptionStatus.CANCELLED
    sub.cancelled_at = utcnow()
    db.session.commit()
    current_app.logger.info("Assinatura %s cancelada por %s", sub.id, user_id)

    if sub.payment_id:
        # primeira cobrança ainda pendente: encerra junto
        apply_gateway_status(sub.payment_id, StandardStatus.CANCELLED, source="subscription_cancel")
    return Result.success(sub.to_dict())
