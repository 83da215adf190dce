from __future__ import annotations

from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_jwt_extended import JWTManager
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError

from .admin import admin_bp
from .auth import auth_bp
from .bootstrap import bootstrap_defaults
from .common.errors import error_payload, register_error_handlers
from .common.file_types import format_size
from .config import Config
from .extensions import cors, db, jwt, migrate
from .files import files_bp
from .folders import folders_bp
from .models import Role, User
from .pages import pages_bp
from .users import users_bp


load_dotenv()


def _register_jwt_handlers(jwt_manager: JWTManager) -> None:
    @jwt_manager.unauthorized_loader
    def unauthorized(reason: str):  # type: ignore[no-untyped-def]
        return jsonify(error_payload("UNAUTHENTICATED", "Missing or invalid authentication token.", {"reason": reason})), 401

    @jwt_manager.invalid_token_loader
    def invalid_token(reason: str):  # type: ignore[no-untyped-def]
        return jsonify(error_payload("INVALID_TOKEN", "Invalid token.", {"reason": reason})), 401

    @jwt_manager.expired_token_loader
    def expired_token(jwt_header, jwt_payload):  # type: ignore[no-untyped-def]
        return jsonify(error_payload("TOKEN_EXPIRED", "Token has expired.")), 401


def _register_health(app: Flask) -> None:
    @app.get("/api/health")
    def healthcheck():
        try:
            db.session.execute(text("SELECT 1"))
            user_count = db.session.query(User.id).count()
            role_count = db.session.query(Role.id).count()
        except SQLAlchemyError as error:
            db.session.rollback()
            app.logger.error("Health check failed: %s", error)
            return jsonify({"status": "error", "database": "unreachable", "error": str(error)}), 500

        return jsonify(
            {
                "status": "ok",
                "database": "connected",
                "stats": {"users": user_count, "roles": role_count},
            }
        )


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    Path(app.config["STORAGE_ROOT"]).mkdir(parents=True, exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    _register_jwt_handlers(jwt)
    cors.init_app(app, resources={r"/api/*": {"origins": app.config["FRONTEND_ORIGINS"]}})

    app.register_blueprint(auth_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(folders_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(pages_bp)

    app.add_template_filter(format_size, "filesize")
    _register_health(app)
    register_error_handlers(app)

    with app.app_context():
        try:
            bootstrap_defaults(commit=True)
        except (OperationalError, ProgrammingError):
            db.session.rollback()

    return app
