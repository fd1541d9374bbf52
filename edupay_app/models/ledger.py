# edupay_app/models/ledger.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from .base import utcnow, iso

TX_CREDIT = "CREDIT"
TX_DEBIT = "DEBIT"

PAYOUT_METHODS = ("PIX", "BANK_TRANSFER")


class InstructorBalance(db.Model):
    __tablename__ = "instructor_balances"

    id = db.Column(db.Integer, primary_key=True)
    instructor_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    available_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    pending_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_earnings = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_withdrawn = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "instructor_id": self.instructor_id,
            "available_balance": str(self.available_balance),
            "pending_balance": str(self.pending_balance),
            "total_earnings": str(self.total_earnings),
            "total_withdrawn": str(self.total_withdrawn),
        }


class BalanceTransaction(db.Model):
    """Livro-razão append-only. Um pagamento gera no máximo um CREDIT e um DEBIT."""
    __tablename__ = "balance_transactions"

    id = db.Column(db.Integer, primary_key=True)
    instructor_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    type = db.Column(db.String(10), nullable=False)                 # CREDIT, DEBIT
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_id = db.Column(db.String(36), db.ForeignKey("payments.id"), index=True)
    payout_id = db.Column(db.Integer, db.ForeignKey("payout_requests.id"))
    description = db.Column(db.String(255), default="")
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    matured_at = db.Column(db.DateTime)                             # só CREDIT: quando virou disponível

    __table_args__ = (
        db.UniqueConstraint("payment_id", "type", name="uq_balance_tx_payment_type"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount": str(self.amount),
            "payment_id": self.payment_id,
            "payout_id": self.payout_id,
            "description": self.description,
            "created_at": iso(self.created_at),
            "matured_at": iso(self.matured_at),
        }


class PayoutRequest(db.Model):
    __tablename__ = "payout_requests"

    id = db.Column(db.Integer, primary_key=True)
    instructor_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    method = db.Column(db.String(20), nullable=False)              # PIX, BANK_TRANSFER
    destination = db.Column(db.JSON)                                # snapshot do perfil no momento do pedido
    status = db.Column(db.String(20), nullable=False, default="REQUESTED")  # liquidação acontece fora daqui
    request_year = db.Column(db.Integer, nullable=False)
    request_month = db.Column(db.Integer, nullable=False)
    requested_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("instructor_id", "request_year", "request_month", name="uq_payout_one_per_month"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": str(self.amount),
            "method": self.method,
            "status": self.status,
            "requested_at": iso(self.requested_at),
        }
