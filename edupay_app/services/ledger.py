# edupay_app/services/ledger.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import re
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import update, select
from sqlalchemy.exc import IntegrityError

from calc import D, q2, ZERO
from ..errors import ValidationError
from ..extensions import db
from ..models import User, InstructorBalance, BalanceTransaction, PayoutRequest
from ..models.base import utcnow
from ..models.ledger import TX_CREDIT, TX_DEBIT, PAYOUT_METHODS
from ..models.user import ROLE_INSTRUCTOR
from .notifications import notify
from .results import Result
from .settings import get_policy


def holding_days() -> int:
    return get_policy("BALANCE_HOLDING_DAYS", cast=int)


def min_payout_amount() -> Decimal:
    return q2(get_policy("MIN_PAYOUT_AMOUNT"))


def _balance_for_update(instructor_id: int) -> InstructorBalance:
    # trava a linha do saldo (Postgres); crédito, estorno e liberação passam por aqui
    bal = (
        InstructorBalance.query
        .filter_by(instructor_id=instructor_id)
        .with_for_update()
        .first()
    )
    if bal is None:
        bal = InstructorBalance(
            instructor_id=instructor_id,
            available_balance=ZERO, pending_balance=ZERO,
            total_earnings=ZERO, total_withdrawn=ZERO,
        )
        db.session.add(bal)
        db.session.flush()
    return bal


def _tx_for_payment(payment_id: str, tx_type: str) -> BalanceTransaction | None:
    return BalanceTransaction.query.filter_by(payment_id=payment_id, type=tx_type).first()


# ---------------------------------------------------------------------
# Crédito / estorno (chamados dentro da transação de quem chamou)
# ---------------------------------------------------------------------
def credit(instructor_id: int, amount, payment_id: str, now: datetime | None = None) -> BalanceTransaction | None:
    amount = q2(amount)
    if amount <= ZERO:
        return None
    if _tx_for_payment(payment_id, TX_CREDIT):
        current_app.logger.warning("Pagamento %s já creditado; ignorando", payment_id)
        return None
    bal = _balance_for_update(instructor_id)
    bal.pending_balance = D(bal.pending_balance) + amount
    bal.total_earnings = D(bal.total_earnings) + amount
    tx = BalanceTransaction(
        instructor_id=instructor_id,
        type=TX_CREDIT,
        amount=amount,
        payment_id=payment_id,
        description=f"Venda {payment_id}",
        created_at=now or utcnow(),
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def debit_for_refund(payment_id: str, now: datetime | None = None) -> BalanceTransaction | None:
    """
    Reverte o crédito de um pagamento reembolsado.
    Se o crédito ainda está retido sai do pendente; se já liberado, do disponível.
    Se o valor já foi sacado, não debita (devolve None).
    """
    credit_tx = _tx_for_payment(payment_id, TX_CREDIT)
    if credit_tx is None:
        return None
    bal = _balance_for_update(credit_tx.instructor_id)
    if _tx_for_payment(payment_id, TX_DEBIT):
        return None
    db.session.refresh(credit_tx)
    amount = D(credit_tx.amount)
    if credit_tx.matured_at is None:
        bal.pending_balance = D(bal.pending_balance) - amount
    elif D(bal.available_balance) >= amount:
        bal.available_balance = D(bal.available_balance) - amount
    else:
        current_app.logger.warning(
            "Crédito do pagamento %s já sacado pelo instrutor %s; estorno sem débito",
            payment_id, credit_tx.instructor_id,
        )
        return None
    bal.total_earnings = D(bal.total_earnings) - amount
    tx = BalanceTransaction(
        instructor_id=credit_tx.instructor_id,
        type=TX_DEBIT,
        amount=amount,
        payment_id=payment_id,
        description=f"Reembolso {payment_id}",
        created_at=now or utcnow(),
    )
    db.session.add(tx)
    db.session.flush()
    return tx


# ---------------------------------------------------------------------
# Liberação após o período de retenção
# ---------------------------------------------------------------------
def release_matured_credits(now: datetime | None = None) -> int:
    """Move do pendente para o disponível os créditos mais velhos que a retenção."""
    now = now or utcnow()
    cutoff = now - timedelta(days=holding_days())
    candidates = (
        BalanceTransaction.query
        .filter(
            BalanceTransaction.type == TX_CREDIT,
            BalanceTransaction.matured_at.is_(None),
            BalanceTransaction.created_at <= cutoff,
        )
        .order_by(BalanceTransaction.created_at.asc())
        .all()
    )
    released = 0
    for tx in candidates:
        bal = _balance_for_update(tx.instructor_id)
        res = db.session.execute(
            update(BalanceTransaction)
            .where(BalanceTransaction.id == tx.id, BalanceTransaction.matured_at.is_(None))
            .values(matured_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            continue  # outra varredura já liberou
        if _tx_for_payment(tx.payment_id, TX_DEBIT):
            continue  # reembolsado antes de liberar: o débito já saiu do pendente
        amount = D(tx.amount)
        bal.pending_balance = D(bal.pending_balance) - amount
        bal.available_balance = D(bal.available_balance) + amount
        released += 1
    db.session.commit()
    if released:
        current_app.logger.info("Liberados %s créditos (corte %s)", released, cutoff)
    return released


def next_release_at(instructor_id: int) -> datetime | None:
    oldest = db.session.execute(
        select(BalanceTransaction.created_at)
        .where(
            BalanceTransaction.instructor_id == instructor_id,
            BalanceTransaction.type == TX_CREDIT,
            BalanceTransaction.matured_at.is_(None),
        )
        .order_by(BalanceTransaction.created_at.asc())
        .limit(1)
    ).scalar()
    return oldest + timedelta(days=holding_days()) if oldest else None


def get_balance(instructor_id: int) -> dict:
    bal = InstructorBalance.query.filter_by(instructor_id=instructor_id).first()
    if bal is None:
        data = {
            "instructor_id": instructor_id,
            "available_balance": "0.00",
            "pending_balance": "0.00",
            "total_earnings": "0.00",
            "total_withdrawn": "0.00",
        }
    else:
        data = bal.to_dict()
    nxt = next_release_at(instructor_id)
    data["next_release_at"] = nxt.isoformat(timespec="seconds") if nxt else None
    data["holding_days"] = holding_days()
    data["min_payout_amount"] = str(min_payout_amount())
    return data


def list_transactions(instructor_id: int, page: int = 1, per_page: int = 20):
    stmt = (
        select(BalanceTransaction)
        .where(BalanceTransaction.instructor_id == instructor_id)
        .order_by(BalanceTransaction.created_at.desc(), BalanceTransaction.id.desc())
    )
    return db.paginate(stmt, page=page, per_page=per_page, error_out=False)


def list_payouts(instructor_id: int, page: int = 1, per_page: int = 20):
    """Histórico de saques do instrutor, mais recente primeiro."""
    stmt = (
        select(PayoutRequest)
        .where(PayoutRequest.instructor_id == instructor_id)
        .order_by(PayoutRequest.requested_at.desc(), PayoutRequest.id.desc())
    )
    return db.paginate(stmt, page=page, per_page=per_page, error_out=False)


# ---------------------------------------------------------------------
# Perfil de repasse
# ---------------------------------------------------------------------
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\+55\d{10,11}$")
DOC_KEY_RE = re.compile(r"^[\d./-]+$")
RANDOM_KEY_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)


def _digits(value) -> str:
    return re.sub(r"\D", "", str(value or ""))


def valid_document(doc_type: str, number: str) -> bool:
    digits = _digits(number)
    size = {"CPF": 11, "CNPJ": 14}.get(doc_type)
    return size is not None and len(digits) == size and len(set(digits)) > 1


def valid_pix_key(key: str) -> bool:
    key = (key or "").strip()
    if not key:
        return False
    if EMAIL_RE.match(key) or PHONE_RE.match(key) or RANDOM_KEY_RE.match(key):
        return True
    # CPF / CNPJ, com ou sem máscara
    return bool(DOC_KEY_RE.match(key)) and len(_digits(key)) in (11, 14)


def update_payout_profile(user_id: int, data: dict) -> Result:
    user = db.session.get(User, user_id)
    if user is None:
        return Result.not_found("Usuário não encontrado")
    if user.role != ROLE_INSTRUCTOR:
        return Result.forbidden("Apenas instrutores têm perfil de repasse")

    full_name = (data.get("full_name") or "").strip()
    doc_type = (data.get("document_type") or "").strip().upper()
    doc_number = _digits(data.get("document_number"))
    pix_key = (data.get("pix_key") or "").strip() or None
    bank_data = data.get("bank_data") or None

    if not full_name:
        raise ValidationError("Nome completo é obrigatório")
    if not valid_document(doc_type, doc_number):
        raise ValidationError("CPF/CNPJ inválido")
    if pix_key and not valid_pix_key(pix_key):
        raise ValidationError("Chave PIX inválida")
    if not pix_key and not bank_data:
        raise ValidationError("Informe uma chave PIX ou dados bancários")

    user.full_name = full_name
    user.document_type = doc_type
    user.document_number = doc_number
    user.pix_key = pix_key
    user.bank_data = bank_data
    # qualquer mudança volta para análise
    user.payout_verified = False
    user.verified_at = None
    db.session.commit()
    return Result.success(user.payout_profile())


def verify_payout_profile(user_id: int, admin_id: int, now: datetime | None = None) -> Result:
    user = db.session.get(User, user_id)
    if user is None:
        return Result.not_found("Usuário não encontrado")
    if not (user.full_name and user.document_number and (user.pix_key or user.bank_data)):
        return Result.failure("Perfil de repasse incompleto", "payout_profile_incomplete")
    user.payout_verified = True
    user.verified_at = now or utcnow()
    db.session.commit()
    current_app.logger.info("Perfil de repasse do instrutor %s verificado por %s", user_id, admin_id)
    return Result.success(user.payout_profile())


# ---------------------------------------------------------------------
# Saque
# ---------------------------------------------------------------------
def request_payout(instructor_id: int, amount, method: str = "PIX", now: datetime | None = None) -> Result:
    now = now or utcnow()
    amount = q2(amount)
    method = (method or "PIX").upper()
    if amount <= ZERO:
        raise ValidationError("Valor do saque deve ser positivo")
    if method not in PAYOUT_METHODS:
        raise ValidationError(f"Método de saque deve ser um de {', '.join(PAYOUT_METHODS)}")

    user = db.session.get(User, instructor_id)
    if user is None or user.role != ROLE_INSTRUCTOR:
        return Result.forbidden("Apenas instrutores podem solicitar saque")
    if not user.payout_verified:
        return Result.failure("Perfil de repasse ainda não verificado", "payout_profile_unverified")
    minimum = min_payout_amount()
    if amount < minimum:
        return Result.failure(f"Valor mínimo para saque é R$ {minimum}", "payout_below_minimum")
    if method == "PIX" and not user.pix_key:
        return Result.failure("Cadastre uma chave PIX", "payout_destination_missing")
    if method == "BANK_TRANSFER" and not user.bank_data:
        return Result.failure("Cadastre os dados bancários", "payout_destination_missing")
    if PayoutRequest.query.filter_by(
        instructor_id=instructor_id, request_year=now.year, request_month=now.month
    ).first():
        return Result.failure("Já existe um saque neste mês", "payout_already_requested")

    bal = _balance_for_update(instructor_id)
    if amount > D(bal.available_balance):
        db.session.rollback()
        return Result.failure("Saldo disponível insuficiente", "insufficient_balance")

    destination = {"pix_key": user.pix_key} if method == "PIX" else {"bank_data": user.bank_data}
    destination.update(full_name=user.full_name, document_number=user.document_number)
    payout = PayoutRequest(
        instructor_id=instructor_id,
        amount=amount,
        method=method,
        destination=destination,
        request_year=now.year,
        request_month=now.month,
        requested_at=now,
    )
    db.session.add(payout)
    db.session.flush()
    bal.available_balance = D(bal.available_balance) - amount
    bal.total_withdrawn = D(bal.total_withdrawn) + amount
    db.session.add(BalanceTransaction(
        instructor_id=instructor_id,
        type=TX_DEBIT,
        amount=amount,
        payout_id=payout.id,
        description=f"Saque {method}",
        created_at=now,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        # outro pedido do mesmo mês venceu a corrida
        db.session.rollback()
        return Result.failure("Já existe um saque neste mês", "payout_already_requested")

    notify(instructor_id, "payout_requested", {"amount": str(amount), "method": method})
    return Result.success(payout, status=201)
