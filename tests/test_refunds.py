# tests/test_refunds.py
# -*- coding: utf-8 -*-
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from edupay_app.errors import ValidationError
from edupay_app.gateways import StandardStatus
from edupay_app.models import PaymentRecord, RefundRequest, InstructorBalance, BalanceTransaction
from edupay_app.models.base import utcnow
from edupay_app.services.ledger import release_matured_credits
from edupay_app.services.reconciliation import apply_gateway_status
from edupay_app.services.refunds import (
    request_refund, approve_refund, reject_refund, cancel_refund, process_refund,
)

PAID_AT = datetime(2026, 5, 1, 10, 0)
REASON = "Conteúdo diferente do anunciado"


@pytest.fixture
def completed_payment(make_payment, student, course):
    p = make_payment(student, course, created_at=PAID_AT)
    apply_gateway_status(p.id, StandardStatus.APPROVED, source="test")
    return p


def test_refund_within_window(db_session, completed_payment, student, notifier):
    res = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT + timedelta(days=7))
    assert res.status == 201
    assert res.value.status == "PENDING"
    assert res.value.amount == Decimal("100.00")
    assert "refund_requested" in notifier.templates(student.id)


def test_refund_after_window_is_ineligible(db_session, completed_payment, student):
    res = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT + timedelta(days=8))
    assert not res.ok
    assert res.code == "refund_window_expired"


def test_window_comes_from_settings(db_session, completed_payment, student):
    from edupay_app.services.settings import set_setting
    set_setting("REFUND_DAYS_LIMIT", "10", group="payments")
    assert request_refund(completed_payment.id, student.id, REASON, now=PAID_AT + timedelta(days=9)).ok


def test_only_completed_payments(db_session, make_payment, student, course):
    p = make_payment(student, course, created_at=PAID_AT)
    res = request_refund(p.id, student.id, REASON, now=PAID_AT)
    assert res.code == "payment_not_completed"


def test_one_active_request_per_payment(db_session, completed_payment, student):
    first = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT)
    dup = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT)
    assert dup.code == "refund_already_requested"
    assert dup.status == 409

    # cancelado libera um novo pedido
    assert cancel_refund(first.value.id, student.id).ok
    assert request_refund(completed_payment.id, student.id, REASON, now=PAID_AT).ok


def test_reason_and_ownership(db_session, completed_payment, make_user):
    with pytest.raises(ValidationError):
        request_refund(completed_payment.id, completed_payment.user_id, "ruim", now=PAID_AT)
    other = make_user("STUDENT")
    assert request_refund(completed_payment.id, other.id, REASON, now=PAID_AT).status == 403


def test_approve_marks_refunded_and_debits_pending(db_session, completed_payment, student, admin_user, instructor):
    refund = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT).value
    res = approve_refund(refund.id, admin_user.id, now=PAID_AT + timedelta(days=1))
    assert res.ok
    assert res.value.status == "APPROVED"
    assert res.value.processed_by == admin_user.id

    db_session.expire_all()
    assert db_session.get(PaymentRecord, completed_payment.id).status == "REFUNDED"
    bal = db_session.query(InstructorBalance).filter_by(instructor_id=instructor.id).one()
    assert bal.pending_balance == Decimal("0.00")
    assert bal.total_earnings == Decimal("0.00")
    debit = db_session.query(BalanceTransaction).filter_by(payment_id=completed_payment.id, type="DEBIT").one()
    assert debit.amount == Decimal("90.00")

    # o crédito estornado não é liberado depois
    assert release_matured_credits(now=utcnow() + timedelta(days=60)) == 0
    db_session.expire_all()
    bal = db_session.query(InstructorBalance).filter_by(instructor_id=instructor.id).one()
    assert bal.available_balance == Decimal("0.00")

    again = approve_refund(refund.id, admin_user.id)
    assert again.code == "invalid_refund_status"


def test_approve_after_release_debits_available(db_session, completed_payment, student, admin_user, instructor):
    refund = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT).value
    assert release_matured_credits(now=utcnow() + timedelta(days=31)) == 1
    approve_refund(refund.id, admin_user.id)
    db_session.expire_all()
    bal = db_session.query(InstructorBalance).filter_by(instructor_id=instructor.id).one()
    assert bal.available_balance == Decimal("0.00")
    assert bal.pending_balance == Decimal("0.00")


def test_approve_when_already_withdrawn_keeps_balance(db_session, completed_payment, student, admin_user, instructor):
    refund = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT).value
    release_matured_credits(now=utcnow() + timedelta(days=31))
    bal = db_session.query(InstructorBalance).filter_by(instructor_id=instructor.id).one()
    bal.available_balance = Decimal("0.00")     # sacado
    db_session.commit()

    res = approve_refund(refund.id, admin_user.id)
    assert res.ok
    assert "sacado" in res.value.notes
    assert db_session.query(BalanceTransaction).filter_by(payment_id=completed_payment.id, type="DEBIT").count() == 0


def test_reject_and_cancel_only_from_pending(db_session, completed_payment, student, admin_user, notifier):
    refund = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT).value
    res = reject_refund(refund.id, admin_user.id, "Curso consumido")
    assert res.value.status == "REJECTED"
    assert res.value.notes == "Curso consumido"
    assert "refund_rejected" in notifier.templates(student.id)
    assert cancel_refund(refund.id, student.id).code == "invalid_refund_status"
    db_session.expire_all()
    assert db_session.get(PaymentRecord, completed_payment.id).status == "COMPLETED"


def test_process_calls_gateway(db_session, completed_payment, student, admin_user, fake_gateway):
    refund = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT).value
    assert process_refund(refund.id).code == "invalid_refund_status"

    approve_refund(refund.id, admin_user.id)
    res = process_refund(refund.id)
    assert res.ok
    assert res.value.status == "PROCESSED"
    assert res.value.external_refund_id.startswith("re_")
    assert fake_gateway.refunds == [(completed_payment.external_payment_id, Decimal("100.00"))]


def test_process_gateway_failure_marks_failed(db_session, completed_payment, student, admin_user, fake_gateway):
    refund = request_refund(completed_payment.id, student.id, REASON, now=PAID_AT).value
    approve_refund(refund.id, admin_user.id)
    fake_gateway.fail_refund = True
    res = process_refund(refund.id)
    assert not res.ok
    assert res.status == 502
    assert res.value.status == "FAILED"
    assert "estorno recusado" in res.value.notes
    db_session.expire_all()
    assert db_session.get(RefundRequest, refund.id).status == "FAILED"
