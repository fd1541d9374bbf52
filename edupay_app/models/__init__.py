# edupay_app/models/__init__.py
# -*- coding: utf-8 -*-
from .user import User
from .course import Course, Enrollment
from .payment import PaymentRecord, SubscriptionRecord, PaymentStatus, SubscriptionStatus
from .coupon import Coupon, CouponUsage
from .refund import RefundRequest, RefundStatus
from .card import SavedCard
from .ledger import InstructorBalance, BalanceTransaction, PayoutRequest
from .setting import Setting


__all__ = [
    "User",
    "Course",
    "Enrollment",
    "PaymentRecord",
    "SubscriptionRecord",
    "PaymentStatus",
    "SubscriptionStatus",
    "Coupon",
    "CouponUsage",
    "RefundRequest",
    "RefundStatus",
    "SavedCard",
    "InstructorBalance",
    "BalanceTransaction",
    "PayoutRequest",
    "Setting",
]
