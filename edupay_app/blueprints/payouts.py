# edupay_app/blueprints/payouts.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify

from ..decorators import instructor_required
from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..services.ledger import get_balance, list_transactions, list_payouts, update_payout_profile, request_payout
from .common import current_user_id, json_body, render

bp = Blueprint("payouts", __name__, url_prefix="/instructor")


@bp.route("/balance")
@instructor_required
def balance():
    return jsonify(get_balance(current_user_id()))


@bp.route("/transactions")
@instructor_required
def transactions():
    page = request.args.get("page", 1, type=int)
    per_page = min(request.args.get("per_page", 20, type=int), 100)
    pg = list_transactions(current_user_id(), page=page, per_page=per_page)
    return jsonify(items=[t.to_dict() for t in pg.items], page=pg.page, pages=pg.pages, total=pg.total)


@bp.route("/payout-profile", methods=["GET"])
@instructor_required
def profile():
    return jsonify(db.session.get(User, current_user_id()).payout_profile())


@bp.route("/payout-profile", methods=["PUT"])
@instructor_required
def update_profile():
    return render(update_payout_profile(current_user_id(), json_body()))


@bp.route("/payouts", methods=["POST"])
@instructor_required
def payout():
    data = json_body()
    if data.get("amount") in (None, ""):
        raise ValidationError("Campo amount é obrigatório")
    return render(request_payout(current_user_id(), data["amount"], data.get("method") or "PIX"))


@bp.route("/payouts", methods=["GET"])
@instructor_required
def payout_history():
    page = request.args.get("page", 1, type=int)
    per_page = min(request.args.get("per_page", 20, type=int), 100)
    pg = list_payouts(current_user_id(), page=page, per_page=per_page)
    return jsonify(items=[p.to_dict() for p in pg.items], page=pg.page, pages=pg.pages, total=pg.total)
