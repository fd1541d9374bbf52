# edupay_app/models/base.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    # gravamos UTC "naive" (mesma convenção das colunas DateTime)
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def iso(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value else None
