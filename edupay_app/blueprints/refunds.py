# edupay_app/blueprints/refunds.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, jsonify

from ..decorators import login_required
from ..errors import ValidationError
from ..models import RefundRequest
from ..services.refunds import request_refund, cancel_refund
from .common import current_user_id, json_body, render

bp = Blueprint("refunds", __name__, url_prefix="/refunds")


@bp.route("", methods=["POST"])
@login_required
def create():
    data = json_body()
    payment_id = data.get("payment_id")
    if not payment_id:
        raise ValidationError("Campo payment_id é obrigatório")
    return render(request_refund(str(payment_id), current_user_id(), data.get("reason") or ""))


@bp.route("", methods=["GET"])
@login_required
def mine():
    rows = (
        RefundRequest.query.filter_by(user_id=current_user_id())
        .order_by(RefundRequest.requested_at.desc())
        .all()
    )
    return jsonify([r.to_dict() for r in rows])


@bp.route("/<int:refund_id>/cancel", methods=["POST"])
@login_required
def cancel(refund_id):
    return render(cancel_refund(refund_id, current_user_id()))
