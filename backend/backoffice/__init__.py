# backend/backoffice/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides land before extensions read the config (tests swap the database here)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.sales import sales_bp
    from .routes.returns import returns_bp
    from .routes.promotions import promotions_bp
    from .routes.delivery import delivery_bp
    from .routes.shipments import shipments_bp
    from .routes.customer_groups import customer_groups_bp
    from .routes.finance import finance_bp
    from .routes.employees import employees_bp
    from .routes.suppliers import suppliers_bp
    from .routes.purchases import purchases_bp
    from .routes.installments import installments_bp
    from .routes.bookings import bookings_bp
    from .routes.quotations import quotations_bp
    from .routes.transfers import transfers_bp
    from .routes.reports import reports_bp
    from .routes.accounts import accounts_bp
    from .routes.damage import damages_bp
    from .routes.warranty import warranties_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(promotions_bp)
    app.register_blueprint(delivery_bp)
    app.register_blueprint(shipments_bp)
    app.register_blueprint(customer_groups_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(employees_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(installments_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(quotations_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(accounts_bp)
    app.register_blueprint(damages_bp)
    app.register_blueprint(warranties_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
