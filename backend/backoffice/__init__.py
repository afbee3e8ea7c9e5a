# backend/backoffice/__init__.py
from flask import Flask, jsonify
from sqlalchemy import event

from .config import Config, external_bind_options
from .errors import AccessDenied, AuthenticationRequired, NotFound
from .extensions import access_cache, db


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # External read-only source gets its own bind; never part of create_all
    external_url = app.config.get("EXTERNAL_DATABASE_URL")
    if external_url and "external" not in (app.config.get("SQLALCHEMY_BINDS") or {}):
        app.config["SQLALCHEMY_BINDS"] = {
            **(app.config.get("SQLALCHEMY_BINDS") or {}),
            "external": external_bind_options(
                external_url, app.config.get("EXTERNAL_QUERY_TIMEOUT_SECONDS", 30),
            ),
        }

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    with app.app_context():
        for engine in db.engines.values():
            if engine.dialect.name == "sqlite":
                _enable_sqlite_savepoints(engine)
    access_cache.init_app(app)

    # Import models so create_all sees the metadata; access_service registers
    # the grant listeners that keep the access cache coherent
    from . import models  # noqa: F401
    from .services import access_service  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.access import access_bp
    from .routes.imports import imports_bp
    from .routes.resources import resources_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(access_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(resources_bp)

    @app.errorhandler(AuthenticationRequired)
    def handle_authentication_required(e):
        return jsonify({"error": "Authentication required"}), 401

    @app.errorhandler(AccessDenied)
    def handle_access_denied(e):
        return jsonify({
            "error": "Permission denied",
            "required_permission": e.required_permission,
            "message": str(e),
        }), 403

    @app.errorhandler(NotFound)
    def handle_not_found(e):
        return jsonify({"error": str(e) or "Not found"}), 404

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def _enable_sqlite_savepoints(engine) -> None:
    """
    Let SQLAlchemy own BEGIN on pysqlite connections.

    The driver otherwise defers BEGIN to the first write, so a SAVEPOINT
    opened earlier becomes the outer transaction and releasing it commits.
    Per-row import transactions and get_or_create depend on real savepoints.
    """
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")
