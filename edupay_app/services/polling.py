# edupay_app/services/polling.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime, timedelta, timezone

from flask import current_app

from ..extensions import db, scheduler
from ..models import PaymentRecord, PaymentStatus
from ..models.base import utcnow
from ..models.payment import PAYMENT_TYPE_SUBSCRIPTION
from .ledger import release_matured_credits
from .payment_state import is_terminal
from .reconciliation import poll_payment_status

POLL_DONE = "done"
POLL_RESCHEDULED = "rescheduled"
POLL_EXHAUSTED = "exhausted"


def next_delay(attempt: int, base: float, cap: float) -> float:
    """Back-off exponencial com teto: base, 2*base, 4*base ... cap."""
    return min(base * (2 ** max(attempt, 0)), cap)


def _job_id(payment_id: str) -> str:
    return f"poll:{payment_id}"


def schedule_status_poll(payment_id: str, attempt: int = 0, app=None) -> datetime | None:
    """Agenda a próxima consulta do pagamento. Sem scheduler rodando, não agenda (a varredura cobre)."""
    app = app or current_app._get_current_object()
    if not scheduler.running:
        return None
    delay = next_delay(attempt, app.config["POLL_BASE_DELAY_SECONDS"], app.config["POLL_MAX_DELAY_SECONDS"])
    run_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
    scheduler.add_job(
        run_poll_attempt,
        "date",
        run_date=run_at,
        args=[app, payment_id, attempt],
        id=_job_id(payment_id),
        replace_existing=True,
        misfire_grace_time=60,
    )
    return run_at


def _mark_polled(payment_id: str) -> PaymentRecord | None:
    payment = db.session.get(PaymentRecord, payment_id)
    if payment is None:
        return None
    payment.poll_attempts = (payment.poll_attempts or 0) + 1
    payment.last_polled_at = utcnow()
    db.session.commit()
    return payment


def run_poll_attempt(app, payment_id: str, attempt: int) -> str:
    """Uma tentativa do loop de polling. Para quando o pagamento fica terminal ou o orçamento acaba."""
    with app.app_context():
        try:
            poll_payment_status(payment_id)
        except Exception:
            db.session.rollback()
            app.logger.exception("Polling do pagamento %s falhou (tentativa %s)", payment_id, attempt)
        payment = _mark_polled(payment_id)
        if payment is None or is_terminal(payment.status):
            return POLL_DONE
        if attempt + 1 >= app.config["POLL_MAX_ATTEMPTS"]:
            app.logger.warning(
                "Pagamento %s segue PENDING após %s consultas; fica com a varredura", payment_id, attempt + 1
            )
            return POLL_EXHAUSTED
        schedule_status_poll(payment_id, attempt + 1, app=app)
        return POLL_RESCHEDULED


def _stale_pending_query(now: datetime):
    cfg = current_app.config
    cutoff = now - timedelta(minutes=cfg["PENDING_SWEEP_MINUTES"])
    oldest = now - timedelta(hours=cfg["PENDING_MAX_AGE_HOURS"])
    return PaymentRecord.query.filter(
        PaymentRecord.status == PaymentStatus.PENDING,
        db.or_(
            PaymentRecord.external_payment_id.isnot(None),
            db.and_(
                PaymentRecord.payment_type == PAYMENT_TYPE_SUBSCRIPTION,
                PaymentRecord.external_order_id.isnot(None),
            ),
        ),
        PaymentRecord.created_at >= oldest,
        PaymentRecord.created_at <= cutoff,
        db.or_(PaymentRecord.last_polled_at.is_(None), PaymentRecord.last_polled_at <= cutoff),
    )


def sweep_stale_pending(now: datetime | None = None, limit: int = 100) -> int:
    """
    Recuperação de webhook perdido: consulta PENDING sem atualização recente.
    Devolve quantos saíram de PENDING.
    """
    now = now or utcnow()
    ids = [p.id for p in _stale_pending_query(now).order_by(PaymentRecord.created_at.asc()).limit(limit)]
    changed = 0
    for payment_id in ids:
        try:
            report = poll_payment_status(payment_id)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Varredura: falha ao consultar %s", payment_id)
            continue
        _mark_polled(payment_id)
        if report.status != PaymentStatus.PENDING:
            changed += 1
    return changed


def list_stuck_payments(now: datetime | None = None) -> list[PaymentRecord]:
    """PENDING mais velhos que PENDING_MAX_AGE_HOURS: saem da varredura e pedem revisão manual."""
    now = now or utcnow()
    oldest = now - timedelta(hours=current_app.config["PENDING_MAX_AGE_HOURS"])
    return (
        PaymentRecord.query
        .filter(PaymentRecord.status == PaymentStatus.PENDING, PaymentRecord.created_at < oldest)
        .order_by(PaymentRecord.created_at.asc())
        .all()
    )


def _sweep_job(app):
    with app.app_context():
        try:
            sweep_stale_pending()
        except Exception:
            db.session.rollback()
            app.logger.exception("Varredura de pagamentos pendentes falhou")


def _release_job(app):
    with app.app_context():
        try:
            release_matured_credits()
        except Exception:
            db.session.rollback()
            app.logger.exception("Liberação de saldos falhou")


def register_jobs(app):
    # varredura de PENDING (webhook perdido) + liberação diária às 03:00
    scheduler.add_job(
        _sweep_job, "interval", minutes=app.config["PENDING_SWEEP_MINUTES"],
        args=[app], id="pending-sweep", replace_existing=True,
    )
    scheduler.add_job(
        _release_job, "cron", hour=3, minute=0,
        args=[app], id="release-balances", replace_existing=True,
    )
