# backend/invoicer/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .time_utils import resolve_timezone


def _configure_logging(app: Flask) -> None:
    # app.logger is the "invoicer" logger, so service module loggers
    # (invoicer.services.*) propagate to its handler.
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Fail at startup, not at the first document number.
    resolve_timezone(app.config.get("NUMBERING_TIMEZONE", "UTC"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.customers import customers_bp
    from .routes.invoices import invoices_bp
    from .routes.payments import payments_bp
    from .routes.ledger import payment_ledgers_bp, transactions_bp
    from .routes.quotation_categories import quotation_categories_bp
    from .routes.reports import reports_bp
    from .routes.settings import settings_bp
    from .routes.admin import admin_bp
    from .routes.users import users_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(payment_ledgers_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(quotation_categories_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(users_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in set(app.config.get("CORS_ALLOWED_ORIGINS", [])):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
