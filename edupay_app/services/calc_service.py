# edupay_app/services/calc_service.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app
from calc import FeeCalculator
from .settings import get_policy


def _build_calculator(percent=None):
    """Constrói a calculadora com o percentual vigente (settings > config)."""
    if percent is None:
        percent = get_policy("PLATFORM_FEE_PERCENTAGE")
    return FeeCalculator(percent)


def init_calculator(app):
    """
    Inicializa a calculadora com o percentual do config.
    A tabela settings ainda pode não existir aqui; get_calculator() reconcilia depois.
    """
    app.extensions["fee_calculator"] = FeeCalculator(app.config["PLATFORM_FEE_PERCENT"])


def get_calculator() -> FeeCalculator:
    """
    Retorna SEMPRE a calculadora com o percentual atual.
    Se o admin mudou PLATFORM_FEE_PERCENTAGE, reconstrói.
    """
    percent = get_policy("PLATFORM_FEE_PERCENTAGE")
    calc = current_app.extensions.get("fee_calculator")
    if calc is None or calc.platform_fee_percent != percent:
        calc = _build_calculator(percent)
        current_app.extensions["fee_calculator"] = calc
    return calc
