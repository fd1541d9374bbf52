# edupay_app/services/cards.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import update

from ..errors import ValidationError
from ..extensions import db
from ..models import SavedCard
from ..models.base import utcnow
from .results import Result


@dataclass(frozen=True)
class CardInput:
    card_number: str
    card_holder_name: str
    expiration_month: int
    expiration_year: int
    security_code: Optional[str] = None     # só validado, nunca salvo
    identification_type: Optional[str] = None
    identification_number: Optional[str] = None


def detect_brand(pan: str) -> str:
    if pan.startswith("4"):
        return "visa"
    if pan.startswith(("5", "2")):
        return "mastercard"
    if pan.startswith("3"):
        return "amex"
    if pan.startswith("6"):
        return "discover"
    return "unknown"


def luhn_ok(pan: str) -> bool:
    total = 0
    for i, ch in enumerate(reversed(pan)):
        n = int(ch)
        if i % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


def _clean(data: CardInput, now: datetime) -> tuple[str, int, int]:
    pan = re.sub(r"\D", "", data.card_number or "")
    if not 13 <= len(pan) <= 19 or not luhn_ok(pan):
        raise ValidationError("Número do cartão inválido")
    if not (data.card_holder_name or "").strip():
        raise ValidationError("Nome do titular é obrigatório")
    try:
        month, year = int(data.expiration_month), int(data.expiration_year)
    except (TypeError, ValueError) as e:
        raise ValidationError("Validade inválida") from e
    if year < 100:
        year += 2000
    if not 1 <= month <= 12:
        raise ValidationError("Mês de validade inválido")
    if (year, month) < (now.year, now.month):
        raise ValidationError("Cartão vencido")
    if data.security_code is not None and not re.fullmatch(r"\d{3,4}", str(data.security_code)):
        raise ValidationError("CVV inválido")
    return pan, month, year


def save_card(user_id: int, data: CardInput, now: datetime | None = None) -> Result:
    now = now or utcnow()
    pan, month, year = _clean(data, now)
    last4, brand = pan[-4:], detect_brand(pan)

    dup = SavedCard.query.filter_by(
        user_id=user_id, last4=last4, expiration_month=month, expiration_year=year
    ).first()
    if dup is not None:
        return Result.failure("Este cartão já está salvo", "card_already_saved", status=409)

    first = SavedCard.query.filter_by(user_id=user_id).first() is None
    card = SavedCard(
        user_id=user_id,
        card_holder_name=data.card_holder_name.strip().upper(),
        last4=last4,
        brand=brand,
        expiration_month=month,
        expiration_year=year,
        identification_type=(data.identification_type or "").upper() or None,
        identification_number=re.sub(r"\D", "", data.identification_number or "") or None,
        is_default=first,
    )
    db.session.add(card)
    db.session.commit()
    current_app.logger.info("Cartão %s ****%s salvo para usuário %s", brand, last4, user_id)
    return Result.success(card, status=201)


def set_default_card(user_id: int, card_id: int) -> Result:
    card = SavedCard.query.filter_by(id=card_id, user_id=user_id).first()
    if card is None:
        return Result.not_found("Cartão não encontrado", "card_not_found")
    # limpa todos antes de marcar o alvo: nunca dois padrões ao mesmo tempo
    db.session.execute(
        update(SavedCard)
        .where(SavedCard.user_id == user_id, SavedCard.id != card_id)
        .values(is_default=False)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(
        update(SavedCard)
        .where(SavedCard.id == card_id)
        .values(is_default=True)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(card)
    return Result.success(card)


def delete_card(user_id: int, card_id: int) -> Result:
    card = SavedCard.query.filter_by(id=card_id, user_id=user_id).first()
    if card is None:
        return Result.not_found("Cartão não encontrado", "card_not_found")
    was_default = card.is_default
    db.session.delete(card)
    db.session.flush()
    promoted = None
    if was_default:
        promoted = (
            SavedCard.query.filter_by(user_id=user_id)
            .order_by(SavedCard.created_at.desc(), SavedCard.id.desc())
            .first()
        )
        if promoted is not None:
            promoted.is_default = True
    db.session.commit()
    return Result.success({"deleted": card_id, "new_default": promoted.id if promoted else None})


def list_cards(user_id: int) -> list[SavedCard]:
    return (
        SavedCard.query.filter_by(user_id=user_id)
        .order_by(SavedCard.is_default.desc(), SavedCard.created_at.desc(), SavedCard.id.desc())
        .all()
    )
