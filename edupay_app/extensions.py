# edupay_app/extensions.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import click
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import text


db = SQLAlchemy()
migrate = Migrate()
scheduler = BackgroundScheduler(daemon=True)


def init_extensions(app):
    # DB/Migrate
    db.init_app(app)
    migrate.init_app(app, db)


def register_cli(app):
    @app.cli.command("init-db")
    def init_db_cmd():
        """Cria as tabelas iniciais (DEV/MVP). Para produção: use flask db upgrade."""
        with app.app_context():
            # sanity check
            db.session.execute(text("SELECT 1"))
            db.create_all()
            print("Tabelas criadas.")

    @app.cli.command("release-balances")
    def release_balances_cmd():
        """Libera para saque os créditos que já cumpriram o período de retenção."""
        from .services.ledger import release_matured_credits
        with app.app_context():
            released = release_matured_credits()
            print(f"Créditos liberados: {released}")

    @app.cli.command("reconcile-pending")
    @click.option("--limit", default=100, show_default=True, help="Máximo de pagamentos por execução.")
    def reconcile_pending_cmd(limit):
        """Consulta o PSP para pagamentos PENDING sem atualização recente."""
        from .services.polling import sweep_stale_pending, list_stuck_payments
        with app.app_context():
            changed = sweep_stale_pending(limit=limit)
            print(f"Pagamentos reconciliados: {changed}")
            for p in list_stuck_payments():
                print(f"Revisão manual: {p.id} ({p.gateway_provider}) criado em {p.created_at:%Y-%m-%d %H:%M}")
