# edupay_app/services/payment_state.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from typing import Optional

from ..gateways.base import StandardStatus
from ..models.payment import PaymentStatus

_FROM_PENDING = {
    StandardStatus.APPROVED: PaymentStatus.COMPLETED,
    StandardStatus.REJECTED: PaymentStatus.FAILED,
    StandardStatus.CANCELLED: PaymentStatus.CANCELLED,
}

# override administrativo: status alvo -> status "do gateway" equivalente
_OVERRIDE_TARGETS = {v: k for k, v in _FROM_PENDING.items()}


def is_terminal(status: str) -> bool:
    return status in PaymentStatus.TERMINAL


def next_status(current: str, gateway_status: StandardStatus) -> Optional[str]:
    """
    Função pura e total. None = nenhuma transição.
    REFUNDED só faz sentido sobre COMPLETED (e na prática só o fluxo de reembolso aplica).
    """
    if gateway_status == StandardStatus.REFUNDED:
        return PaymentStatus.REFUNDED if current == PaymentStatus.COMPLETED else None
    if current != PaymentStatus.PENDING:
        return None
    return _FROM_PENDING.get(gateway_status)


def gateway_status_for(target: str) -> Optional[StandardStatus]:
    return _OVERRIDE_TARGETS.get(target)
