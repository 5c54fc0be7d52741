# backend/vendsys/__init__.py
from __future__ import annotations

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None, *, payment_gateway=None, mail_transport=None) -> Flask:
    """
    Build the application.

    `payment_gateway` and `mail_transport` replace the clients built from
    configuration (tests pass fakes here).
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # External collaborators
    from .services.payment_gateway import build_payment_gateway
    from .services.mail_transport import build_mail_transport

    app.extensions["payment_gateway"] = payment_gateway or build_payment_gateway(app.config)
    app.extensions["mail_transport"] = mail_transport or build_mail_transport(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.machines import machines_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.users import users_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(machines_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origin = (app.config.get("FRONTEND_URL") or "").rstrip("/")
        if origin and origin == allowed_origin:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("MONITOR_SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        from .services.scheduler import ensure_monitor_started

        @app.before_request
        def start_liveness_monitor():
            ensure_monitor_started(app)

    return app
