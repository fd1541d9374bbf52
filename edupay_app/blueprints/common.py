# edupay_app/blueprints/common.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import session, request, jsonify

from ..errors import ValidationError
from ..services.results import Result


def current_user_id() -> int | None:
    u = session.get("user") or {}
    return u.get("id")


def current_is_admin() -> bool:
    return bool((session.get("user") or {}).get("is_admin"))


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Corpo JSON deve ser um objeto")
    return data


def int_field(data: dict, name: str, required: bool = True, default=None) -> int | None:
    value = data.get(name, default)
    if value in (None, ""):
        if required:
            raise ValidationError(f"Campo {name} é obrigatório")
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Campo {name} deve ser inteiro") from e


def render(result: Result, serialize=None):
    """Result -> resposta JSON. serialize converte result.value no sucesso."""
    if not result.ok:
        body = {"error": result.error, "code": result.code}
        if isinstance(result.value, dict):
            body.update(result.value)
        return jsonify(body), result.status
    value = result.value
    if serialize is not None:
        value = serialize(value)
    elif hasattr(value, "to_dict"):
        value = value.to_dict()
    return jsonify(value), result.status
