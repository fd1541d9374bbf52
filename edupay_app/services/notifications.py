# edupay_app/services/notifications.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app

from ..extensions import scheduler


class LoggingNotifier:
    """Notificador padrão: só registra. O envio real (e-mail/push) pluga aqui."""

    def send(self, user_id: int, template: str, context: dict) -> None:
        current_app.logger.info("notify user=%s template=%s ctx=%s", user_id, template, context)


def init_notifier(app):
    app.extensions.setdefault("notifier", LoggingNotifier())


def _deliver(app, user_id, template, context):
    with app.app_context():
        try:
            app.extensions["notifier"].send(user_id, template, context)
        except Exception:
            # fire-and-forget: falha de notificação não desfaz pagamento
            app.logger.exception("Falha ao notificar user=%s template=%s", user_id, template)


def notify(user_id: int, template: str, context: dict | None = None) -> None:
    """Despacha sem bloquear quem chamou (job do scheduler); sem scheduler, entrega na hora."""
    app = current_app._get_current_object()
    args = [app, user_id, template, dict(context or {})]
    if scheduler.running:
        scheduler.add_job(_deliver, args=args)
    else:
        _deliver(*args)
