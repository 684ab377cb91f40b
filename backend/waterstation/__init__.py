# backend/waterstation/__init__.py
import logging
import time

from flask import Flask, request, g
from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .extensions import db, migrate
from .errors import AppError, StorageError


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("waterstation").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.users import users_bp
    from .routes.items import items_bp
    from .routes.customers import customers_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(items_bp)
    # Legacy product endpoints are the item endpoints under another prefix
    app.register_blueprint(items_bp, url_prefix="/api/products", name="products")
    app.register_blueprint(customers_bp)
    app.register_blueprint(sales_bp)

    @app.errorhandler(AppError)
    def handle_app_error(e: AppError):
        if e.status_code >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, e.message)
        return e.to_dict(), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("Database error on %s %s", request.method, request.path)
        err = StorageError("Database error")
        return err.to_dict(), err.status_code

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        started = g.get("request_started")
        if started is not None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            app.logger.info(
                "%s %s -> %s (%.1f ms)", request.method, request.path, response.status_code, elapsed_ms,
            )
        return response

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ORIGINS", ()))
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
