# edupay_app/models/user.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from .base import utcnow, iso

ROLE_STUDENT = "STUDENT"
ROLE_INSTRUCTOR = "INSTRUCTOR"
ROLE_ADMIN = "ADMIN"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(180), unique=True, nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_STUDENT)  # STUDENT, INSTRUCTOR, ADMIN
    is_admin = db.Column(db.Boolean, default=False)
    active = db.Column(db.Boolean, default=True)

    # perfil de repasse (instrutor)
    full_name = db.Column(db.String(180))
    document_type = db.Column(db.String(10))      # CPF, CNPJ
    document_number = db.Column(db.String(20))
    pix_key = db.Column(db.String(140))
    bank_data = db.Column(db.JSON)                # {"bank": "...", "agency": "...", "account": "..."}
    payout_verified = db.Column(db.Boolean, default=False, nullable=False)
    verified_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def is_instructor(self) -> bool:
        return self.role == ROLE_INSTRUCTOR

    def payout_profile(self) -> dict:
        return {
            "full_name": self.full_name,
            "document_type": self.document_type,
            "document_number": self.document_number,
            "pix_key": self.pix_key,
            "bank_data": self.bank_data,
            "verified": bool(self.payout_verified),
            "verified_at": iso(self.verified_at),
        }
