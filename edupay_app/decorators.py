# edupay_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import session, jsonify

from .extensions import db
from .models import User
from .models.user import ROLE_INSTRUCTOR


def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not session.get("user"):
            return jsonify(error="Faça login para acessar.", code="unauthorized"), 401
        return view_func(*args, **kwargs)
    return wrapper


def admin_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        user = session.get("user")
        if not user:
            return jsonify(error="Faça login para acessar.", code="unauthorized"), 401
        if not user.get("is_admin"):
            return jsonify(error="Acesso restrito ao administrador.", code="forbidden"), 403
        return view_func(*args, **kwargs)
    return wrapper


def instructor_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        user = session.get("user")
        if not user:
            return jsonify(error="Faça login para acessar.", code="unauthorized"), 401
        u = db.session.get(User, user.get("id"))
        if u is None or u.role != ROLE_INSTRUCTOR:
            return jsonify(error="Acesso restrito a instrutores.", code="forbidden"), 403
        return view_func(*args, **kwargs)
    return wrapper
