# backend/rentstock/__init__.py
from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import InventoryError
from .extensions import db, migrate
from .validation import ValidationError


def create_app(config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock import stock_bp
    from .routes.assets import assets_bp
    from .routes.rentals import rentals_bp
    from .routes.sales import sales_bp
    from .routes.activity_logs import activity_logs_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(assets_bp)
    app.register_blueprint(rentals_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(activity_logs_bp)

    @app.errorhandler(InventoryError)
    def handle_inventory_error(exc: InventoryError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({"error": str(exc), "code": "VALIDATION_ERROR"}), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        current_app.logger.exception("Unhandled error")
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
