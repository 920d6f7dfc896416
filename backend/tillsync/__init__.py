# backend/tillsync/__init__.py
from __future__ import annotations

from flask import Flask, request

from .config import Config
from .errors import register_error_handlers
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.me import me_bp
    from .routes.products import products_bp
    from .routes.receipts import receipts_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(me_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(receipts_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Merchant-Id"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,OPTIONS"
        return response

    if app.config.get("DEBUG_SEED_ENABLED"):
        from .services.seed_service import seed_demo_data

        with app.app_context():
            db.create_all()
            seed_demo_data()

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
