# edupay_app/blueprints/payments.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify
from sqlalchemy import select

from calc import D, payment_options
from ..decorators import login_required
from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import PaymentRecord, SubscriptionRecord
from ..services.checkout import (
    PurchaseRequest, SubscriptionRequest, create_purchase, create_subscription, cancel_subscription, quote,
)
from ..services.payment_state import is_terminal
from ..services.reconciliation import poll_payment_status
from .common import current_user_id, current_is_admin, json_body, int_field, render

bp = Blueprint("payments", __name__, url_prefix="/payments")


@bp.route("", methods=["POST"])
@login_required
def create():
    """Compra avulsa de um curso."""
    data = json_body()
    req = PurchaseRequest(
        user_id=current_user_id(),
        course_id=int_field(data, "course_id"),
        payment_method=data.get("payment_method") or "",
        coupon_code=data.get("coupon_code"),
        card_token=data.get("card_token"),
        card_brand=data.get("payment_method_id"),
        saved_card_id=int_field(data, "saved_card_id", required=False),
        installments=int_field(data, "installments", required=False, default=1),
        provider=data.get("provider"),
    )
    return render(create_purchase(req))


@bp.route("/quote", methods=["POST"])
@login_required
def price_quote():
    data = json_body()
    res = quote(current_user_id(), int_field(data, "course_id"), data.get("coupon_code"))
    return render(res, serialize=lambda b: b.as_dict())


@bp.route("/options")
def options():
    """Taxas estimadas do PSP por método, para o valor informado."""
    amount = D(request.args.get("amount"))
    if amount <= 0:
        raise ValidationError("Informe amount > 0")
    opts = payment_options(amount)
    return jsonify([{k: (str(v) if k in ("fee", "net_amount") else v) for k, v in o.items()} for o in opts])


@bp.route("", methods=["GET"])
@login_required
def history():
    page = request.args.get("page", 1, type=int)
    per_page = min(request.args.get("per_page", 20, type=int), 100)
    stmt = (
        select(PaymentRecord)
        .where(PaymentRecord.user_id == current_user_id())
        .order_by(PaymentRecord.created_at.desc())
    )
    pg = db.paginate(stmt, page=page, per_page=per_page, error_out=False)
    return jsonify(items=[p.to_dict() for p in pg.items], page=pg.page, pages=pg.pages, total=pg.total)


@bp.route("/<payment_id>/status")
@login_required
def status(payment_id):
    """Terminal: devolve o registro. PENDING: consulta o PSP, reconcilia e devolve o status atual."""
    payment = db.session.get(PaymentRecord, payment_id)
    if payment is None or (payment.user_id != current_user_id() and not current_is_admin()):
        raise NotFound("Pagamento não encontrado")
    if is_terminal(payment.status):
        return jsonify(payment_id=payment.id, status=payment.status, stale=False, payment=payment.to_dict())
    report = poll_payment_status(payment_id)
    payment = db.session.get(PaymentRecord, payment_id)
    return jsonify(payment_id=payment.id, status=report.status, stale=report.stale, payment=payment.to_dict())


# ---------------- Assinaturas ----------------
@bp.route("/subscriptions", methods=["POST"])
@login_required
def subscribe():
    data = json_body()
    req = SubscriptionRequest(
        user_id=current_user_id(),
        course_id=int_field(data, "course_id"),
        frequency=int_field(data, "frequency", required=False, default=1),
        frequency_type=(data.get("frequency_type") or "months").lower(),
        card_token=data.get("card_token"),
        provider=data.get("provider"),
    )
    return render(create_subscription(req))


@bp.route("/subscriptions", methods=["GET"])
@login_required
def subscriptions():
    subs = (
        SubscriptionRecord.query.filter_by(user_id=current_user_id())
        .order_by(SubscriptionRecord.created_at.desc())
        .all()
    )
    return jsonify([s.to_dict() for s in subs])


@bp.route("/subscriptions/<subscription_id>/cancel", methods=["POST"])
@login_required
def cancel(subscription_id):
    return render(cancel_subscription(current_user_id(), subscription_id, is_admin=current_is_admin()))
