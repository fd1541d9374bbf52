# edupay_app/services/catalog.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..extensions import db
from ..models import User, Course


@dataclass(frozen=True)
class CourseInfo:
    id: int
    title: str
    price: Decimal
    instructor_id: int
    published: bool


@dataclass(frozen=True)
class UserInfo:
    id: int
    name: str
    email: str
    role: str
    active: bool


def get_course(course_id) -> Optional[CourseInfo]:
    c = db.session.get(Course, course_id)
    if c is None:
        return None
    return CourseInfo(c.id, c.title, Decimal(c.price), c.instructor_id, bool(c.published))


def get_user(user_id) -> Optional[UserInfo]:
    u = db.session.get(User, user_id)
    if u is None:
        return None
    return UserInfo(u.id, u.name, u.email, u.role, bool(u.active))
