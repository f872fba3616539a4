# backend/storefront/__init__.py
from flask import Flask, jsonify

from .config import Config
from .errors import DomainError
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.variants import variants_bp, parents_bp
    from .routes.orders import orders_bp
    from .routes.stock_movements import stock_movements_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(variants_bp)
    app.register_blueprint(parents_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(stock_movements_bp)

    @app.errorhandler(DomainError)
    def handle_domain_error(exc: DomainError):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
