# edupay_app/services/refunds.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import update

from ..errors import GatewayError, ValidationError
from ..extensions import db
from ..gateways import get_gateway
from ..models import PaymentRecord, PaymentStatus, RefundRequest, RefundStatus
from ..models.base import utcnow
from ..models.payment import INTERNAL_PROVIDER
from .ledger import debit_for_refund
from .notifications import notify
from .results import Result
from .settings import get_policy


def refund_window_days() -> int:
    return get_policy("REFUND_DAYS_LIMIT", cast=int)


def _active_request(payment_id: str) -> RefundRequest | None:
    return RefundRequest.query.filter(
        RefundRequest.payment_id == payment_id,
        RefundRequest.status.in_(RefundStatus.ACTIVE),
    ).first()


def check_eligibility(payment: PaymentRecord, now: datetime) -> Result:
    if payment.status != PaymentStatus.COMPLETED:
        return Result.failure("Só pagamentos concluídos podem ser reembolsados", "payment_not_completed")
    days = refund_window_days()
    if now - payment.created_at > timedelta(days=days):
        return Result.failure(f"Prazo de reembolso de {days} dias expirado", "refund_window_expired")
    if _active_request(payment.id) is not None:
        return Result.failure("Já existe um pedido de reembolso para este pagamento", "refund_already_requested", status=409)
    return Result.success(payment)


def request_refund(payment_id: str, user_id: int, reason: str, now: datetime | None = None) -> Result:
    now = now or utcnow()
    reason = (reason or "").strip()
    if len(reason) < 5:
        raise ValidationError("Descreva o motivo do reembolso")

    payment = db.session.get(PaymentRecord, payment_id)
    if payment is None:
        return Result.not_found("Pagamento não encontrado")
    if payment.user_id != user_id:
        return Result.forbidden()
    check = check_eligibility(payment, now)
    if not check.ok:
        return check

    refund = RefundRequest(
        payment_id=payment.id,
        user_id=user_id,
        amount=payment.amount,
        reason=reason,
        status=RefundStatus.PENDING,
        requested_at=now,
    )
    db.session.add(refund)
    db.session.commit()
    current_app.logger.info("Reembolso %s solicitado para pagamento %s", refund.id, payment.id)
    notify(user_id, "refund_requested", {"refund_id": refund.id, "payment_id": payment.id})
    return Result.success(refund, status=201)


def _move(refund_id: int, expected: str, new: str, **values) -> bool:
    res = db.session.execute(
        update(RefundRequest)
        .where(RefundRequest.id == refund_id, RefundRequest.status == expected)
        .values(status=new, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def approve_refund(refund_id: int, admin_id: int, now: datetime | None = None) -> Result:
    """
    PENDING -> APPROVED. O pagamento vai de COMPLETED para REFUNDED e o crédito
    do instrutor é revertido (se ainda não foi sacado). Tudo numa transação.
    """
    now = now or utcnow()
    refund = db.session.get(RefundRequest, refund_id)
    if refund is None:
        return Result.not_found("Pedido de reembolso não encontrado")
    if refund.status != RefundStatus.PENDING:
        return Result.failure(f"Pedido já está {refund.status}", "invalid_refund_status")

    if not _move(refund_id, RefundStatus.PENDING, RefundStatus.APPROVED, processed_by=admin_id, processed_at=now):
        db.session.rollback()
        return Result.failure("Pedido já foi analisado", "invalid_refund_status")
    res = db.session.execute(
        update(PaymentRecord)
        .where(PaymentRecord.id == refund.payment_id, PaymentRecord.status == PaymentStatus.COMPLETED)
        .values(status=PaymentStatus.REFUNDED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.session.rollback()
        return Result.failure("Pagamento não está mais concluído", "payment_not_refundable")

    debit = debit_for_refund(refund.payment_id, now=now)
    if debit is None:
        db.session.execute(
            update(RefundRequest)
            .where(RefundRequest.id == refund_id)
            .values(notes="Crédito do instrutor já sacado; sem débito no saldo")
            .execution_options(synchronize_session=False)
        )
    db.session.commit()
    db.session.refresh(refund)
    current_app.logger.info("Reembolso %s aprovado por %s (pagamento %s)", refund_id, admin_id, refund.payment_id)
    notify(refund.user_id, "refund_approved", {"refund_id": refund.id, "amount": str(refund.amount)})
    return Result.success(refund)


def reject_refund(refund_id: int, admin_id: int, notes: str = "", now: datetime | None = None) -> Result:
    now = now or utcnow()
    refund = db.session.get(RefundRequest, refund_id)
    if refund is None:
        return Result.not_found("Pedido de reembolso não encontrado")
    if not _move(refund_id, RefundStatus.PENDING, RefundStatus.REJECTED,
                 processed_by=admin_id, processed_at=now, notes=(notes or "").strip() or None):
        db.session.rollback()
        return Result.failure(f"Pedido já está {refund.status}", "invalid_refund_status")
    db.session.commit()
    db.session.refresh(refund)
    notify(refund.user_id, "refund_rejected", {"refund_id": refund.id, "notes": refund.notes})
    return Result.success(refund)


def cancel_refund(refund_id: int, user_id: int) -> Result:
    refund = db.session.get(RefundRequest, refund_id)
    if refund is None:
        return Result.not_found("Pedido de reembolso não encontrado")
    if refund.user_id != user_id:
        return Result.forbidden()
    if not _move(refund_id, RefundStatus.PENDING, RefundStatus.CANCELLED):
        db.session.rollback()
        return Result.failure(f"Pedido já está {refund.status}", "invalid_refund_status")
    db.session.commit()
    db.session.refresh(refund)
    return Result.success(refund)


def process_refund(refund_id: int, now: datetime | None = None) -> Result:
    """APPROVED -> PROCESSED (estorno feito no PSP) ou FAILED (erro guardado em notes)."""
    now = now or utcnow()
    refund = db.session.get(RefundRequest, refund_id)
    if refund is None:
        return Result.not_found("Pedido de reembolso não encontrado")
    if refund.status != RefundStatus.APPROVED:
        return Result.failure(f"Pedido está {refund.status}; só APPROVED é processado", "invalid_refund_status")

    payment = refund.payment
    external_refund_id = None
    if payment.gateway_provider != INTERNAL_PROVIDER and payment.external_payment_id:
        try:
            external_refund_id = get_gateway(payment.gateway_provider).refund_payment(
                payment.external_payment_id, refund.amount
            )
        except GatewayError as e:
            current_app.logger.warning("Estorno do reembolso %s falhou no PSP: %s", refund_id, e)
            _move(refund_id, RefundStatus.APPROVED, RefundStatus.FAILED, notes=str(e), processed_at=now)
            db.session.commit()
            db.session.refresh(refund)
            return Result.failure("Falha ao estornar no gateway", "refund_gateway_failed", status=502, value=refund)

    if not _move(refund_id, RefundStatus.APPROVED, RefundStatus.PROCESSED,
                 external_refund_id=external_refund_id, processed_at=now):
        db.session.rollback()
        return Result.failure("Pedido mudou de status durante o processamento", "invalid_refund_status")
    db.session.commit()
    db.session.refresh(refund)
    current_app.logger.info("Reembolso %s processado (estorno %s)", refund_id, external_refund_id)
    notify(refund.user_id, "refund_processed", {"refund_id": refund.id, "amount": str(refund.amount)})
    return Result.success(refund)
