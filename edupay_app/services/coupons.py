# edupay_app/services/coupons.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import update, func

from calc import D, q2, CouponTerms, DISCOUNT_PERCENTAGE, DISCOUNT_FLAT_RATE
from ..errors import ValidationError
from ..extensions import db
from ..models import Coupon, CouponUsage, Course
from ..models.base import utcnow
from .results import Result


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def coupon_terms(coupon: Coupon | None) -> CouponTerms | None:
    if coupon is None:
        return None
    return CouponTerms(coupon.discount_type, D(coupon.discount_value))


def validate_coupon(code, user_id: int, course_id: int | None = None, now: datetime | None = None) -> Result:
    """Validade do cupom (separada da conta do desconto). value = Coupon."""
    now = now or utcnow()
    code = normalize_code(code)
    if not code:
        return Result.failure("Informe o código do cupom", "coupon_required", status=400)

    coupon = Coupon.query.filter_by(code=code).first()
    if coupon is None:
        return Result.not_found("Cupom não encontrado", "coupon_not_found")
    if not coupon.is_active:
        return Result.failure("Cupom inativo", "coupon_inactive")
    if coupon.valid_from and now < coupon.valid_from:
        return Result.failure("Cupom ainda não está válido", "coupon_not_started")
    if coupon.valid_until and now > coupon.valid_until:
        return Result.failure("Cupom expirado", "coupon_expired")
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        return Result.failure("Cupom esgotado", "coupon_exhausted")
    if coupon.course_id is not None and course_id is not None and coupon.course_id != course_id:
        return Result.failure("Cupom não vale para este curso", "coupon_wrong_course")
    if CouponUsage.query.filter_by(coupon_id=coupon.id, user_id=user_id).first():
        return Result.failure("Você já usou este cupom", "coupon_already_used")
    return Result.success(coupon)


def redeem_coupon(coupon_id: int, user_id: int, payment_id: str, discount_amount) -> bool:
    """
    Registra o uso quando o pagamento é confirmado. Roda dentro da transação
    da reconciliação (sem commit). Devolve False se o par (cupom, usuário) já existe.
    """
    if CouponUsage.query.filter_by(coupon_id=coupon_id, user_id=user_id).first():
        current_app.logger.warning(
            "Cupom %s já usado pelo usuário %s; pagamento %s segue sem novo registro", coupon_id, user_id, payment_id
        )
        return False
    db.session.add(CouponUsage(
        coupon_id=coupon_id, user_id=user_id, payment_id=payment_id, discount_amount=q2(discount_amount),
    ))
    db.session.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id)
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    return True


def _parse_dt(value, field: str) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError(f"Data inválida em {field}") from e


def _clean_fields(data: dict, current: Coupon | None = None) -> dict:
    """
    Valida os campos enviados. Na edição (current informado) só o que veio no
    corpo é validado; tipo e valor do desconto são checados juntos.
    """
    fields = {}
    if current is None or "code" in data:
        code = normalize_code(data.get("code"))
        if not code:
            raise ValidationError("Código do cupom é obrigatório")
        fields["code"] = code

    if current is None or "discount_type" in data or "discount_value" in data:
        discount_type = (data.get("discount_type") or (current.discount_type if current else "")).strip().upper()
        if discount_type not in (DISCOUNT_PERCENTAGE, DISCOUNT_FLAT_RATE):
            raise ValidationError("discount_type deve ser PERCENTAGE ou FLAT_RATE")
        value = D(data["discount_value"] if "discount_value" in data else (current.discount_value if current else None))
        if value <= 0:
            raise ValidationError("discount_value deve ser positivo")
        if discount_type == DISCOUNT_PERCENTAGE and value > Decimal("100"):
            raise ValidationError("Percentual não pode passar de 100")
        fields["discount_type"] = discount_type
        fields["discount_value"] = q2(value)

    if current is None or "max_uses" in data:
        max_uses = data.get("max_uses")
        if max_uses not in (None, ""):
            try:
                max_uses = int(max_uses)
            except (TypeError, ValueError) as e:
                raise ValidationError("max_uses inválido") from e
            if max_uses <= 0:
                raise ValidationError("max_uses deve ser positivo")
        else:
            max_uses = None
        fields["max_uses"] = max_uses

    for key in ("valid_from", "valid_until"):
        if current is None or key in data:
            fields[key] = _parse_dt(data.get(key), key)
    valid_from = fields.get("valid_from", current.valid_from if current else None)
    valid_until = fields.get("valid_until", current.valid_until if current else None)
    if valid_from and valid_until and valid_until <= valid_from:
        raise ValidationError("valid_until deve ser depois de valid_from")

    if current is None or "description" in data:
        fields["description"] = (data.get("description") or "").strip()
    if current is None or "is_active" in data:
        fields["is_active"] = bool(data.get("is_active", True))
    if current is None or "course_id" in data:
        course_id = data.get("course_id")
        if course_id in (None, ""):
            fields["course_id"] = None
        else:
            try:
                fields["course_id"] = int(course_id)
            except (TypeError, ValueError) as e:
                raise ValidationError("course_id deve ser inteiro") from e
    return fields


def _course_owned_by(course_id: int | None, owner_id: int | None) -> bool:
    if course_id is None or owner_id is None:
        return True
    course = db.session.get(Course, course_id)
    return course is not None and course.instructor_id == owner_id


def _scoped_coupon(coupon_id: int, owner_id: int | None) -> Coupon | None:
    """owner_id = instrutor: só enxerga os cupons que ele mesmo criou."""
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None or (owner_id is not None and coupon.created_by_id != owner_id):
        return None
    return coupon


def create_coupon(data: dict, created_by: int | None = None, owner_id: int | None = None) -> Result:
    fields = _clean_fields(data)
    if not _course_owned_by(fields["course_id"], owner_id):
        return Result.forbidden("Você só pode criar cupons para seus próprios cursos")
    if Coupon.query.filter_by(code=fields["code"]).first():
        return Result.failure("Já existe um cupom com este código", "coupon_code_taken", status=409)

    coupon = Coupon(created_by_id=created_by, **fields)
    db.session.add(coupon)
    db.session.commit()
    current_app.logger.info("Cupom %s criado por %s", coupon.code, created_by)
    return Result.success(coupon, status=201)


def update_coupon(coupon_id: int, data: dict, owner_id: int | None = None) -> Result:
    coupon = _scoped_coupon(coupon_id, owner_id)
    if coupon is None:
        return Result.not_found("Cupom não encontrado", "coupon_not_found")
    fields = _clean_fields(data, current=coupon)
    if "course_id" in fields and not _course_owned_by(fields["course_id"], owner_id):
        return Result.forbidden("Você só pode vincular cupons aos seus próprios cursos")
    if "code" in fields and fields["code"] != coupon.code and Coupon.query.filter_by(code=fields["code"]).first():
        return Result.failure("Já existe um cupom com este código", "coupon_code_taken", status=409)

    for key, value in fields.items():
        setattr(coupon, key, value)
    db.session.commit()
    current_app.logger.info("Cupom %s atualizado (%s)", coupon.code, ", ".join(sorted(fields)))
    return Result.success(coupon)


def deactivate_coupon(coupon_id: int, owner_id: int | None = None) -> Result:
    """Exclusão lógica: usos e pagamentos antigos continuam apontando para o cupom."""
    coupon = _scoped_coupon(coupon_id, owner_id)
    if coupon is None:
        return Result.not_found("Cupom não encontrado", "coupon_not_found")
    if coupon.is_active:
        coupon.is_active = False
        db.session.commit()
        current_app.logger.info("Cupom %s desativado", coupon.code)
    return Result.success(coupon)


def list_coupons(created_by: int | None = None) -> list[dict]:
    """Cupons com o curso e o total de desconto já concedido."""
    q = Coupon.query
    if created_by is not None:
        q = q.filter_by(created_by_id=created_by)
    coupons = q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()
    if not coupons:
        return []

    ids = [c.id for c in coupons]
    totals = dict(
        db.session.query(CouponUsage.coupon_id, func.coalesce(func.sum(CouponUsage.discount_amount), 0))
        .filter(CouponUsage.coupon_id.in_(ids))
        .group_by(CouponUsage.coupon_id)
        .all()
    )
    course_ids = {c.course_id for c in coupons if c.course_id}
    titles = dict(
        db.session.query(Course.id, Course.title).filter(Course.id.in_(course_ids)).all()
    ) if course_ids else {}

    rows = []
    for c in coupons:
        row = c.to_dict()
        row["course_title"] = titles.get(c.course_id)
        row["total_discount_given"] = str(q2(totals.get(c.id, 0)))
        rows.append(row)
    return rows
