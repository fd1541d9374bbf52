# edupay_app/gateways/base.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional


class StandardStatus(str, Enum):
    """Vocabulário único de status, independente do PSP."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class SubscriptionGatewayStatus(str, Enum):
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    FINISHED = "FINISHED"


def to_standard_status(mapping: Mapping[str, StandardStatus], raw: Optional[str]) -> StandardStatus:
    # função total: status desconhecido vira PENDING, nunca erro
    return mapping.get((raw or "").strip().lower(), StandardStatus.PENDING)


def to_subscription_status(mapping: Mapping[str, SubscriptionGatewayStatus], raw: Optional[str]) -> SubscriptionGatewayStatus:
    return mapping.get((raw or "").strip().lower(), SubscriptionGatewayStatus.PENDING)


# ---------------------------------------------------------------------
# Requisições / respostas
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Payer:
    email: str
    name: str = ""
    identification_type: Optional[str] = None      # CPF, CNPJ
    identification_number: Optional[str] = None


@dataclass(frozen=True)
class GatewayPaymentRequest:
    reference: str                      # id do PaymentRecord (também é a chave de idempotência)
    amount: Decimal
    currency: str
    method: str                         # PIX, CREDIT_CARD, DEBIT_CARD, BOLETO
    description: str
    payer: Payer
    card_token: Optional[str] = None
    card_brand: Optional[str] = None
    installments: int = 1
    notification_url: Optional[str] = None


@dataclass
class GatewayPaymentResult:
    external_id: str
    status: StandardStatus
    external_order_id: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewaySubscriptionRequest:
    reference: str
    amount: Decimal
    currency: str
    reason: str
    payer: Payer
    frequency: int = 1
    frequency_type: str = "months"      # days, months
    card_token: Optional[str] = None
    back_url: Optional[str] = None


@dataclass
class GatewaySubscriptionResult:
    external_id: str
    status: SubscriptionGatewayStatus
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    """
    Notificação já normalizada.
    kind: "payment" ou "subscription". reference é o id local, quando o PSP devolve.
    """
    kind: str
    external_id: str
    status: Optional[StandardStatus] = None
    subscription_status: Optional[SubscriptionGatewayStatus] = None
    reference: Optional[str] = None


class PaymentGateway(ABC):
    name = ""

    @abstractmethod
    def create_payment(self, req: GatewayPaymentRequest) -> GatewayPaymentResult:
        ...

    @abstractmethod
    def create_subscription(self, req: GatewaySubscriptionRequest) -> GatewaySubscriptionResult:
        ...

    @abstractmethod
    def get_payment_status(self, external_id: str) -> StandardStatus:
        ...

    @abstractmethod
    def get_subscription_status(self, external_id: str) -> SubscriptionGatewayStatus:
        ...

    @abstractmethod
    def process_webhook(self, payload: bytes, headers: Mapping[str, str], args: Mapping[str, str]) -> Optional[WebhookEvent]:
        """Valida e normaliza a notificação. None = recebida, nada a fazer."""

    @abstractmethod
    def cancel_subscription(self, external_id: str) -> SubscriptionGatewayStatus:
        ...

    @abstractmethod
    def refund_payment(self, external_id: str, amount: Decimal) -> str:
        """Estorna no PSP e devolve o id do estorno."""
