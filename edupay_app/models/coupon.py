# edupay_app/models/coupon.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from .base import utcnow, iso


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)   # sempre MAIÚSCULO
    description = db.Column(db.String(255), default="")
    discount_type = db.Column(db.String(20), nullable=False)                    # PERCENTAGE, FLAT_RATE
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)
    max_uses = db.Column(db.Integer)                                            # None = ilimitado
    used_count = db.Column(db.Integer, nullable=False, default=0)
    valid_from = db.Column(db.DateTime)
    valid_until = db.Column(db.DateTime)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    course_id = db.Column(db.Integer, db.ForeignKey("courses.id"))             # None = qualquer curso
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": str(self.discount_value),
            "max_uses": self.max_uses,
            "used_count": self.used_count,
            "valid_from": iso(self.valid_from),
            "valid_until": iso(self.valid_until),
            "is_active": self.is_active,
            "course_id": self.course_id,
        }


class CouponUsage(db.Model):
    __tablename__ = "coupon_usages"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), index=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    payment_id = db.Column(db.String(36), db.ForeignKey("payments.id"), nullable=False)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    used_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("coupon_id", "user_id", name="uq_coupon_usages_coupon_user"),
    )
