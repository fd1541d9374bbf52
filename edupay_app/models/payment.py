# edupay_app/models/payment.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from .base import utcnow, new_id, iso


class PaymentStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED, REFUNDED})
    ALL = frozenset({PENDING, COMPLETED, FAILED, CANCELLED, REFUNDED})


PAYMENT_TYPE_ONE_TIME = "ONE_TIME"
PAYMENT_TYPE_SUBSCRIPTION = "SUBSCRIPTION"

PAYMENT_METHODS = ("PIX", "CREDIT_CARD", "DEBIT_CARD", "BOLETO")
CARD_METHODS = ("CREDIT_CARD", "DEBIT_CARD")

# pagamentos zerados por cupom não passam pelo PSP
INTERNAL_PROVIDER = "internal"


class PaymentRecord(db.Model):
    """
    Tentativa de compra. Nunca é apagada (auditoria).
    Status só anda PENDING -> COMPLETED/FAILED/CANCELLED (reconciliação)
    e COMPLETED -> REFUNDED (fluxo de reembolso).
    """
    __tablename__ = "payments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey("courses.id"), index=True, nullable=False)
    instructor_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True)

    external_payment_id = db.Column(db.String(120), index=True)
    external_order_id = db.Column(db.String(120))

    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)       # o que o aluno paga
    original_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    platform_fee_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    instructor_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="BRL")
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"))

    status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING, index=True)
    payment_type = db.Column(db.String(20), nullable=False, default=PAYMENT_TYPE_ONE_TIME)
    payment_method = db.Column(db.String(20), nullable=False)
    gateway_provider = db.Column(db.String(30), nullable=False)
    gateway_payload = db.Column(db.JSON)          # resposta bruta do PSP (QR code, boleto, etc.)

    poll_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_polled_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in PaymentStatus.TERMINAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "status": self.status,
            "payment_type": self.payment_type,
            "payment_method": self.payment_method,
            "amount": str(self.amount),
            "original_amount": str(self.original_amount),
            "discount_amount": str(self.discount_amount),
            "platform_fee_amount": str(self.platform_fee_amount),
            "instructor_amount": str(self.instructor_amount),
            "currency": self.currency,
            "gateway_provider": self.gateway_provider,
            "external_payment_id": self.external_payment_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class SubscriptionStatus:
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    FINISHED = "FINISHED"

    ACTIVE = frozenset({PENDING, AUTHORIZED, PAUSED})
    CLOSED = frozenset({CANCELLED, FINISHED})


class SubscriptionRecord(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey("courses.id"), index=True, nullable=False)
    payment_id = db.Column(db.String(36), db.ForeignKey("payments.id"))

    external_subscription_id = db.Column(db.String(120), index=True)
    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.PENDING)
    frequency = db.Column(db.Integer, nullable=False, default=1)
    frequency_type = db.Column(db.String(10), nullable=False, default="months")  # days, months
    amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="BRL")
    gateway_provider = db.Column(db.String(30), nullable=False)
    gateway_payload = db.Column(db.JSON)

    cancelled_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    payment = db.relationship("PaymentRecord", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "payment_id": self.payment_id,
            "status": self.status,
            "frequency": self.frequency,
            "frequency_type": self.frequency_type,
            "amount": str(self.amount),
            "currency": self.currency,
            "external_subscription_id": self.external_subscription_id,
            "cancelled_at": iso(self.cancelled_at),
            "created_at": iso(self.created_at),
        }
