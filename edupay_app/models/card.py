# edupay_app/models/card.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from .base import utcnow, iso


class SavedCard(db.Model):
    """Referência ao cartão. PAN completo e CVV nunca chegam aqui."""
    __tablename__ = "saved_cards"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    card_holder_name = db.Column(db.String(120), nullable=False)
    last4 = db.Column(db.String(4), nullable=False)
    brand = db.Column(db.String(20), nullable=False)       # visa, mastercard, amex, discover, unknown
    expiration_month = db.Column(db.Integer, nullable=False)
    expiration_year = db.Column(db.Integer, nullable=False)
    identification_type = db.Column(db.String(10))
    identification_number = db.Column(db.String(20))
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # no máximo um cartão padrão por usuário
        db.Index(
            "uq_saved_cards_one_default",
            "user_id",
            unique=True,
            sqlite_where=db.text("is_default = 1"),
            postgresql_where=db.text("is_default"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card_holder_name": self.card_holder_name,
            "last4": self.last4,
            "brand": self.brand,
            "expiration_month": self.expiration_month,
            "expiration_year": self.expiration_year,
            "is_default": self.is_default,
            "created_at": iso(self.created_at),
        }
