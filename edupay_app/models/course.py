# edupay_app/models/course.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from ..extensions import db
from .base import utcnow


class Course(db.Model):
    """Só o necessário para cobrar: preço e instrutor. O CRUD de cursos vive em outro lugar."""
    __tablename__ = "courses"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    instructor_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    published = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class Enrollment(db.Model):
    __tablename__ = "enrollments"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey("courses.id"), index=True, nullable=False)
    payment_id = db.Column(db.String(36), db.ForeignKey("payments.id"))
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
    )
