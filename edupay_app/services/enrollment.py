# edupay_app/services/enrollment.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from ..models import Enrollment


def is_enrolled(user_id: int, course_id: int) -> bool:
    return Enrollment.query.filter_by(user_id=user_id, course_id=course_id).first() is not None


def grant_enrollment(user_id: int, course_id: int, payment_id: str | None = None) -> bool:
    """
    Libera o acesso ao curso. Idempotente por (user, course): repetir não duplica.
    Não faz commit: roda dentro da transação de quem chamou.
    """
    if is_enrolled(user_id, course_id):
        return False
    db.session.add(Enrollment(user_id=user_id, course_id=course_id, payment_id=payment_id))
    return True
