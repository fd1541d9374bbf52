# edupay_app/services/results.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import IneligibleOperation


@dataclass
class Result:
    """Resultado de regra de negócio: falhas voltam como valor, não como exceção."""
    ok: bool
    value: Any = None
    error: Optional[str] = None
    code: Optional[str] = None
    status: int = 200

    @classmethod
    def success(cls, value: Any = None, status: int = 200) -> "Result":
        return cls(ok=True, value=value, status=status)

    @classmethod
    def failure(cls, error: str, code: str = IneligibleOperation.code,
                status: int = IneligibleOperation.status_code, value: Any = None) -> "Result":
        return cls(ok=False, value=value, error=error, code=code, status=status)

    @classmethod
    def not_found(cls, error: str, code: str = "not_found") -> "Result":
        return cls.failure(error, code, status=404)

    @classmethod
    def forbidden(cls, error: str = "Acesso negado", code: str = "forbidden") -> "Result":
        return cls.failure(error, code, status=403)
