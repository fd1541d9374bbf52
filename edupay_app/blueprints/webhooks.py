# edupay_app/blueprints/webhooks.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify, current_app

from ..errors import ConfigurationError, ValidationError
from ..services.reconciliation import reconcile_webhook

bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@bp.route("/<provider>", methods=["POST"])  # configure a URL no painel do PSP
def receive(provider: str):
    """
    Sempre 200 para não provocar tempestade de reenvio.
    400 só para payload malformado ou assinatura inválida; 404 para PSP desconhecido.
    """
    provider = provider.lower()
    try:
        event = reconcile_webhook(provider, request.get_data(), request.headers, request.args)
    except ConfigurationError:
        return jsonify(error=f"Provedor {provider} não configurado", code="unknown_provider"), 404
    except ValidationError as e:
        current_app.logger.warning("Webhook %s rejeitado: %s", provider, e)
        return jsonify(e.to_dict()), 400
    return jsonify(received=True, handled=event is not None)
