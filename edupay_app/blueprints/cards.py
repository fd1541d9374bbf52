# edupay_app/blueprints/cards.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, jsonify

from ..decorators import login_required
from ..services.cards import CardInput, save_card, set_default_card, delete_card, list_cards
from .common import current_user_id, json_body, render

bp = Blueprint("cards", __name__, url_prefix="/cards")


@bp.route("", methods=["GET"])
@login_required
def index():
    return jsonify([c.to_dict() for c in list_cards(current_user_id())])


@bp.route("", methods=["POST"])
@login_required
def create():
    data = json_body()
    card = CardInput(
        card_number=str(data.get("card_number") or ""),
        card_holder_name=data.get("card_holder_name") or "",
        expiration_month=data.get("expiration_month"),
        expiration_year=data.get("expiration_year"),
        security_code=data.get("security_code"),
        identification_type=data.get("identification_type"),
        identification_number=data.get("identification_number"),
    )
    return render(save_card(current_user_id(), card))


@bp.route("/<int:card_id>/default", methods=["POST"])
@login_required
def make_default(card_id):
    return render(set_default_card(current_user_id(), card_id))


@bp.route("/<int:card_id>", methods=["DELETE"])
@login_required
def remove(card_id):
    return render(delete_card(current_user_id(), card_id))
