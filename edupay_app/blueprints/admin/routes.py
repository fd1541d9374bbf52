# edupay_app/blueprints/admin/routes.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from decimal import Decimal, InvalidOperation
from flask import request, jsonify

from ..admin import admin_bp
from ..common import current_user_id, json_body, render
from ...decorators import admin_required
from ...errors import ValidationError
from ...models import RefundRequest
from ...services.coupons import create_coupon, update_coupon, deactivate_coupon, list_coupons
from ...services.ledger import release_matured_credits, verify_payout_profile
from ...services.polling import list_stuck_payments
from ...services.reconciliation import override_payment_status
from ...services.refunds import approve_refund, reject_refund, process_refund
from ...services.settings import get_setting, set_setting, POLICY_KEYS


# ---------------- ADMIN: Cupons ----------------
@admin_bp.route("/coupons", methods=["GET"])
@admin_required
def coupons():
    return jsonify(list_coupons())


@admin_bp.route("/coupons", methods=["POST"])
@admin_required
def coupon_create():
    return render(create_coupon(json_body(), created_by=current_user_id()))


@admin_bp.route("/coupons/<int:coupon_id>", methods=["PUT"])
@admin_required
def coupon_update(coupon_id):
    return render(update_coupon(coupon_id, json_body()))


@admin_bp.route("/coupons/<int:coupon_id>", methods=["DELETE"])
@admin_required
def coupon_deactivate(coupon_id):
    return render(deactivate_coupon(coupon_id))


# ---------------- ADMIN: Reembolsos ----------------
@admin_bp.route("/refunds")
@admin_required
def refunds():
    q = RefundRequest.query
    status = (request.args.get("status") or "").upper()
    if status:
        q = q.filter_by(status=status)
    rows = q.order_by(RefundRequest.requested_at.asc()).all()
    return jsonify([r.to_dict() for r in rows])


@admin_bp.route("/refunds/<int:refund_id>/approve", methods=["POST"])
@admin_required
def refund_approve(refund_id):
    return render(approve_refund(refund_id, current_user_id()))


@admin_bp.route("/refunds/<int:refund_id>/reject", methods=["POST"])
@admin_required
def refund_reject(refund_id):
    data = json_body()
    return render(reject_refund(refund_id, current_user_id(), data.get("notes") or ""))


@admin_bp.route("/refunds/<int:refund_id>/process", methods=["POST"])
@admin_required
def refund_process(refund_id):
    return render(process_refund(refund_id))


# ---------------- ADMIN: Pagamentos ----------------
@admin_bp.route("/payments/<payment_id>/status", methods=["POST"])
@admin_required
def payment_override(payment_id):
    data = json_body()
    return render(override_payment_status(payment_id, data.get("status"), current_user_id(), data.get("note") or ""))


@admin_bp.route("/payments/stuck")
@admin_required
def payments_stuck():
    return jsonify([p.to_dict() for p in list_stuck_payments()])


# ---------------- ADMIN: Instrutores / saldo ----------------
@admin_bp.route("/instructors/<int:user_id>/verify", methods=["POST"])
@admin_required
def instructor_verify(user_id):
    return render(verify_payout_profile(user_id, current_user_id()))


@admin_bp.route("/ledger/release", methods=["POST"])
@admin_required
def ledger_release():
    return jsonify(released=release_matured_credits())


# ---------------- ADMIN: Política (settings) ----------------
@admin_bp.route("/settings", methods=["GET"])
@admin_required
def settings_get():
    return jsonify({k: get_setting(k, group="payments", default="") for k in POLICY_KEYS})


@admin_bp.route("/settings", methods=["PUT"])
@admin_required
def settings_put():
    data = json_body()
    unknown = set(data) - set(POLICY_KEYS)
    if unknown:
        raise ValidationError(f"Chaves desconhecidas: {', '.join(sorted(unknown))}")
    for key, value in data.items():
        try:
            number = Decimal(str(value))
        except InvalidOperation as e:
            raise ValidationError(f"{key} deve ser numérico") from e
        if number < 0 or (key == "PLATFORM_FEE_PERCENTAGE" and number > 100):
            raise ValidationError(f"{key} fora do intervalo permitido")
    for key, value in data.items():
        set_setting(key, str(value), group="payments")
    return jsonify({k: get_setting(k, group="payments", default="") for k in POLICY_KEYS})
