# edupay_app/errors.py
# -*- coding: utf-8 -*-
from __future__ import annotations


class PaymentError(Exception):
    status_code = 400
    code = "payment_error"

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message or self.code, "code": self.code}


class ValidationError(PaymentError):
    """Requisição malformada; rejeitada antes de qualquer chamada ao PSP."""
    status_code = 400
    code = "validation_error"


class WebhookSignatureError(ValidationError):
    code = "invalid_signature"


class NotFound(PaymentError):
    status_code = 404
    code = "not_found"


class IneligibleOperation(PaymentError):
    """Regra de negócio barrou a operação. Volta como Result.failure, não é levantada."""
    status_code = 422
    code = "ineligible_operation"


class GatewayError(PaymentError):
    """Chamada ao PSP falhou ou expirou. O registro continua PENDING."""
    status_code = 502
    code = "gateway_error"

    def __init__(self, message: str = "", provider: str | None = None, code: str | None = None):
        super().__init__(message, code=code)
        self.provider = provider


class ConfigurationError(PaymentError):
    status_code = 503
    code = "configuration_error"


class ReconciliationConflict(PaymentError):
    """Outro gatilho já fez a transição; absorvido internamente, nunca chega ao cliente."""
    status_code = 409
    code = "reconciliation_conflict"
