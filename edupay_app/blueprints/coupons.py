# edupay_app/blueprints/coupons.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, jsonify

from ..decorators import login_required, instructor_required
from ..services.coupons import (
    validate_coupon, coupon_terms, create_coupon, update_coupon, deactivate_coupon, list_coupons,
)
from ..services.calc_service import get_calculator
from ..services.catalog import get_course
from .common import current_user_id, json_body, int_field, render

bp = Blueprint("coupons", __name__, url_prefix="/coupons")


@bp.route("/validate", methods=["POST"])
@login_required
def validate():
    data = json_body()
    course_id = int_field(data, "course_id", required=False)
    res = validate_coupon(data.get("code"), current_user_id(), course_id)
    if not res.ok:
        return render(res)
    coupon = res.value
    body = {"valid": True, "coupon": coupon.to_dict()}
    course = get_course(course_id) if course_id else None
    if course is not None:
        body["breakdown"] = get_calculator().calculate(course.price, coupon_terms(coupon)).as_dict()
    res.value = body
    return render(res)


# ---------------- INSTRUTOR: cupons dos próprios cursos ----------------
instructor_bp = Blueprint("instructor_coupons", __name__, url_prefix="/instructor/coupons")


@instructor_bp.route("", methods=["GET"])
@instructor_required
def mine():
    return jsonify(list_coupons(created_by=current_user_id()))


@instructor_bp.route("", methods=["POST"])
@instructor_required
def create_mine():
    uid = current_user_id()
    return render(create_coupon(json_body(), created_by=uid, owner_id=uid))


@instructor_bp.route("/<int:coupon_id>", methods=["PUT"])
@instructor_required
def update_mine(coupon_id):
    return render(update_coupon(coupon_id, json_body(), owner_id=current_user_id()))


@instructor_bp.route("/<int:coupon_id>", methods=["DELETE"])
@instructor_required
def delete_mine(coupon_id):
    return render(deactivate_coupon(coupon_id, owner_id=current_user_id()))
