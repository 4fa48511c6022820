# backend/stockroom/__init__.py
import logging

from flask import Flask
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from .config import Config
from .errors import ServiceError, TransactionTimeoutError
from .extensions import db, migrate, product_cache


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    product_cache.init_app(app, client=app.config.get("PRODUCT_CACHE_CLIENT"))

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.organizations import organizations_bp
    from .routes.invites import invites_bp
    from .routes.products import products_bp
    from .routes.stock import stock_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(organizations_bp)
    app.register_blueprint(invites_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(stock_bp)

    @app.errorhandler(ServiceError)
    def handle_service_error(error: ServiceError):
        return error.to_dict(), error.status_code

    @app.errorhandler(PoolTimeoutError)
    def handle_pool_timeout(error):
        # Raised outside a transaction boundary (plain reads).
        db.session.rollback()
        app.logger.warning("Timed out waiting for a database connection: %s", error)
        timeout = TransactionTimeoutError()
        return timeout.to_dict(), timeout.status_code

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
