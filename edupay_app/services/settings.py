# edupay_app/services/settings.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from decimal import Decimal, InvalidOperation
from flask import current_app
from ..extensions import db
from ..models import Setting

# chaves de política editáveis em runtime -> chave do config usada como fallback
POLICY_KEYS = {
    "PLATFORM_FEE_PERCENTAGE": "PLATFORM_FEE_PERCENT",
    "REFUND_DAYS_LIMIT": "REFUND_WINDOW_DAYS",
    "BALANCE_HOLDING_DAYS": "BALANCE_HOLDING_DAYS",
    "MIN_PAYOUT_AMOUNT": "MIN_PAYOUT_AMOUNT",
}


def get_setting(key: str, group: str = "payments", default: str = "") -> str:
    s = Setting.query.filter_by(group=group, key=key).first()
    return s.value if s else default


def set_setting(key: str, value: str, group: str = "payments") -> None:
    s = Setting.query.filter_by(group=group, key=key).first()
    if not s:
        s = Setting(group=group, key=key, value=value)
        db.session.add(s)
    else:
        s.value = value
    db.session.commit()


def get_policy(key: str, cast=Decimal):
    """Valor da tabela settings; se vazio ou inválido, cai no config."""
    fallback = current_app.config[POLICY_KEYS[key]]
    raw = (get_setting(key, group="payments", default="") or "").strip()
    if raw:
        try:
            return cast(raw)
        except (ValueError, InvalidOperation):
            current_app.logger.warning("Setting %s inválido (%r); usando %s do config", key, raw, fallback)
    return cast(fallback)
