# edupay_app/models/refund.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from .base import utcnow, iso


class RefundStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    # bloqueiam um novo pedido para o mesmo pagamento
    ACTIVE = frozenset({PENDING, APPROVED, PROCESSED})


class RefundRequest(db.Model):
    __tablename__ = "refund_requests"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.String(36), db.ForeignKey("payments.id"), index=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RefundStatus.PENDING, index=True)
    external_refund_id = db.Column(db.String(120))
    processed_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    notes = db.Column(db.Text)
    requested_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    processed_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    payment = db.relationship("PaymentRecord", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "reason": self.reason,
            "status": self.status,
            "notes": self.notes,
            "external_refund_id": self.external_refund_id,
            "requested_at": iso(self.requested_at),
            "processed_at": iso(self.processed_at),
        }
