# backend/core_exchange/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    # Overrides must land before extensions read the config (engine is built in init_app)
    if config_overrides:
        app.config.update(config_overrides)

    # Service modules log under "core_exchange.*" and propagate to app.logger
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.pricing import pricing_bp
    from .routes.orders import orders_bp
    from .routes.debts import clients_bp, sellers_bp, ledger_bp
    from .routes.entries import entries_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(sellers_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(entries_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
