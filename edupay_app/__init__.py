# edupay_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os
from datetime import datetime, timezone

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .errors import PaymentError
from .extensions import db, migrate, scheduler, init_extensions, register_cli
from .gateways import init_gateways, available_gateways
from .services.calc_service import init_calculator
from .services.notifications import init_notifier
from .services.polling import register_jobs
from .blueprints.admin import admin_bp
from .blueprints.payments import bp as payments_bp
from .blueprints.webhooks import bp as webhooks_bp
from .blueprints.coupons import bp as coupons_bp, instructor_bp as instructor_coupons_bp
from .blueprints.refunds import bp as refunds_bp
from .blueprints.cards import bp as cards_bp
from .blueprints.payouts import bp as payouts_bp

CONFIGS = {
    "testing": TestingConfig,
    "staging": StagingConfig,
    "production": ProductionConfig,
}


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PaymentError)
    def handle_payment_error(e: PaymentError):
        if e.status_code >= 500:
            app.logger.warning("%s: %s", e.code, e)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify(error=e.description, code=e.name.lower().replace(" ", "_")), e.code


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    app_env = os.getenv("APP_ENV", "").lower()
    app.config.from_object(CONFIGS.get(app_env, Config))
    if overrides:
        app.config.update(overrides)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Extensões (DB/Migrate/Scheduler)
    init_extensions(app)

    # Serviços: ficam disponíveis em app.extensions
    init_gateways(app)      # app.extensions["gateways"]
    init_calculator(app)    # app.extensions["fee_calculator"]
    init_notifier(app)      # app.extensions["notifier"]
    app.config["STARTED_AT"] = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    # Blueprints
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(coupons_bp)
    app.register_blueprint(instructor_coupons_bp)
    app.register_blueprint(refunds_bp)
    app.register_blueprint(cards_bp)
    app.register_blueprint(payouts_bp)
    app.register_blueprint(admin_bp)
    _register_error_handlers(app)

    # CLI (ex.: flask init-db, flask release-balances)
    register_cli(app)

    # Scheduler (polling com back-off, varredura de PENDING, liberação diária de saldo)
    if not app.config.get("TESTING") and os.getenv("DISABLE_SCHEDULER") != "1":
        register_jobs(app)
        if not scheduler.running:
            scheduler.start()

    @app.route("/health")
    def health():
        return jsonify(status="ok", started_at=app.config["STARTED_AT"], gateways=available_gateways())

    return app
