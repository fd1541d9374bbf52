# calc.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from dataclasses import dataclass, asdict
from decimal import Decimal, getcontext, ROUND_HALF_UP, InvalidOperation
from typing import Dict, Any, List, Optional

# Precisão alta; arredondar só no fim
getcontext().prec = 28
ROUND = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")

DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FLAT_RATE = "FLAT_RATE"


def D(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    if x is None:
        return Decimal('0')
    if isinstance(x, (int, float)):
        return Decimal(str(x))
    s = str(x).strip()
    # aceita "1.234,56" e "1234,56"
    if '.' in s and ',' in s and s.rfind(',') > s.rfind('.'):
        s = s.replace('.', '').replace(',', '.')
    else:
        s = s.replace(',', '.')
    try:
        return Decimal(s or '0')
    except InvalidOperation:
        return Decimal('0')


def q2(x) -> Decimal:
    return D(x).quantize(Decimal('0.01'), rounding=ROUND)


# ---------------------------------------------------------------------
# Modelos
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CouponTerms:
    discount_type: str
    discount_value: Decimal


@dataclass
class FeeBreakdown:
    original: Decimal
    discount: Decimal
    discounted: Decimal
    platform_fee: Decimal
    instructor_amount: Decimal
    total: Decimal
    platform_fee_percent: Decimal

    def as_dict(self) -> Dict[str, str]:
        return {k: str(v) for k, v in asdict(self).items()}


# ---------------------------------------------------------------------
# Calculadora de taxa da plataforma + cupom
# ---------------------------------------------------------------------
class FeeCalculator:
    """
    preço original -> desconto do cupom -> taxa da plataforma -> valor do instrutor.

    Arredonda (HALF_UP, 2 casas) só no fim. O valor do instrutor e o total saem
    dos números já arredondados, então sempre vale:
      platform_fee + instructor_amount == total == discounted
      discount + total == original
    """

    def __init__(self, platform_fee_percent):
        pct = D(platform_fee_percent)
        if pct < ZERO or pct > HUNDRED:
            raise ValueError(f"percentual de taxa inválido: {platform_fee_percent}")
        self.platform_fee_percent = pct

    def raw_discount(self, price: Decimal, coupon: Optional[CouponTerms]) -> Decimal:
        if coupon is None or price <= ZERO:
            return ZERO
        value = D(coupon.discount_value)
        if value <= ZERO:
            return ZERO
        if coupon.discount_type == DISCOUNT_PERCENTAGE:
            raw = price * value / HUNDRED
        elif coupon.discount_type == DISCOUNT_FLAT_RATE:
            raw = value
        else:
            raise ValueError(f"tipo de desconto desconhecido: {coupon.discount_type}")
        return min(raw, price)

    def calculate(self, price, coupon: Optional[CouponTerms] = None) -> FeeBreakdown:
        original = max(q2(price), ZERO)
        raw_discount = self.raw_discount(original, coupon)
        raw_discounted = original - raw_discount
        raw_fee = raw_discounted * self.platform_fee_percent / HUNDRED

        discount = q2(raw_discount)
        total = original - discount
        platform_fee = min(q2(raw_fee), total)
        return FeeBreakdown(
            original=original,
            discount=discount,
            discounted=total,
            platform_fee=platform_fee,
            instructor_amount=total - platform_fee,
            total=total,
            platform_fee_percent=self.platform_fee_percent,
        )


# ---------------------------------------------------------------------
# Taxas do PSP (Mercado Pago), fixas
# ---------------------------------------------------------------------
GATEWAY_FEES: Dict[str, Dict[str, Any]] = {
    "PIX": {"percentage": Decimal("0.99"), "fixed": Decimal("0"), "description": "PIX - Taxa mais baixa"},
    "CREDIT_CARD": {"percentage": Decimal("2.99"), "fixed": Decimal("0.39"), "description": "Cartão de Crédito - À vista"},
    "DEBIT_CARD": {"percentage": Decimal("1.99"), "fixed": Decimal("0.39"), "description": "Cartão de Débito"},
    "BOLETO": {"percentage": Decimal("0"), "fixed": Decimal("3.49"), "description": "Boleto Bancário - Taxa fixa"},
}


def gateway_fee(amount, method: str) -> Decimal:
    cfg = GATEWAY_FEES.get(method)
    if cfg is None:
        raise ValueError(f"método de pagamento desconhecido: {method}")
    return q2(D(amount) * cfg["percentage"] / HUNDRED + cfg["fixed"])


def payment_options(amount) -> List[Dict[str, Any]]:
    """Métodos com taxa estimada e líquido; o mais barato vem marcado como recomendado."""
    amount = q2(amount)
    options = []
    for method, cfg in GATEWAY_FEES.items():
        fee = gateway_fee(amount, method)
        details = f"{cfg['percentage']}%"
        if cfg["fixed"] > ZERO:
            details += f" + R$ {cfg['fixed']}"
        options.append({
            "method": method,
            "description": cfg["description"],
            "fee": fee,
            "fee_details": details,
            "net_amount": amount - fee,
            "recommended": False,
        })
    options.sort(key=lambda o: o["fee"])
    if options:
        options[0]["recommended"] = True
    return options
