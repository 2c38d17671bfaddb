"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - Alembic to import the models without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Refuse to start without three distinct JWT secrets (except in testing)
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Build the auth collaborators (email sender, forgot-password limiter,
     Google verifier) into app.extensions
  5. Register the /auth and /admin blueprints
  6. Register global error handlers (AppError → JSON, Exception → 500)
  7. Register CLI commands

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it.
"""

from __future__ import annotations

import logging
import traceback
import uuid
from datetime import datetime

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from mrgcar.config import config_by_name, validate_production_config, validate_secrets


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask renders datetimes as RFC 822 strings by default; the clients expect
# ISO 8601. UUID primary keys are sent as plain strings.

class AuthJSONProvider(DefaultJSONProvider):

    def default(self, o):
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, uuid.UUID):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".

    Raises:
        ValueError: JWT secrets missing / not distinct (outside testing), or
                    production settings missing.
    """
    app = Flask(__name__)
    app.json_provider_class = AuthJSONProvider
    app.json = AuthJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if not app.config.get("TESTING"):
        validate_secrets(app)
    if config_name == "production":
        validate_production_config(app)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # ── Extensions ─────────────────────────────────────────────────────────
    from mrgcar.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    with app.app_context():
        from mrgcar.app.models import (  # noqa: F401
            admin_user,
            password_reset_token,
            refresh_token,
            user,
        )

    _register_collaborators(app)
    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    from mrgcar.app.cli import register_commands
    register_commands(app)

    return app


def _register_collaborators(app: Flask) -> None:
    """
    Builds the outbound collaborators once per app.

    Stored in app.extensions so routes look them up per request and tests
    can replace them (e.g. a recording email sender) after create_app().
    """
    from mrgcar.app.extensions import (
        ATTEMPT_LIMITER_KEY,
        EMAIL_SENDER_KEY,
        GOOGLE_VERIFIER_KEY,
    )
    from mrgcar.app.services.attempt_limiter import build_attempt_limiter
    from mrgcar.app.services.email_service import build_email_sender
    from mrgcar.app.services.google_identity import build_google_verifier

    app.extensions[EMAIL_SENDER_KEY] = build_email_sender(app.config, app.logger)
    app.extensions[ATTEMPT_LIMITER_KEY] = build_attempt_limiter(app.config)
    app.extensions[GOOGLE_VERIFIER_KEY] = build_google_verifier(app.config, app.logger)

    if app.config.get("RATELIMIT_REDIS_URL"):
        app.logger.info("Forgot-password limiter: shared Redis store")
    else:
        app.logger.info(
            "Forgot-password limiter: in-memory (per process; limits are not "
            "shared between instances)"
        )


def _register_blueprints(app: Flask) -> None:
    from mrgcar.app.routes.admin import admin_bp
    from mrgcar.app.routes.auth import auth_bp

    app.register_blueprint(auth_bp,  url_prefix=app.config["AUTH_URL_PREFIX"])
    app.register_blueprint(admin_bp, url_prefix=app.config["ADMIN_URL_PREFIX"])


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct status
      ValidationError → marshmallow errors as MISSING_FIELD / INVALID_FIELD (400)
      HTTPException   → werkzeug errors (404, 405, ...) in the same envelope
      SQLAlchemyError → SERVER_ERROR (500), session rolled back
      Exception       → SERVER_ERROR (500); traceback logged, never returned
    """
    from mrgcar.app.errors import AppError, ErrorCode
    from mrgcar.app.extensions import db

    def _error(code: str, message: str, status: int, field: str | None = None):
        payload = {"code": code, "message": message}
        if field is not None:
            payload["field"] = field
        return jsonify({"success": False, "error": payload}), status

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.
        """
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST field error only.

        Missing required fields map to MISSING_FIELD, everything else to
        INVALID_FIELD.
        """
        messages = error.messages
        field = None
        message = "Invalid input."
        code = ErrorCode.INVALID_FIELD

        if isinstance(messages, dict) and messages:
            field_name, field_errors = next(iter(messages.items()))
            field = field_name if field_name != "_schema" else None
            if isinstance(field_errors, list):
                message = str(field_errors[0]) if field_errors else "Invalid value."
            else:
                message = str(field_errors)
        elif isinstance(messages, list) and messages:
            message = str(messages[0])

        if message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD

        return _error(code, message, 400, field)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return _error(
            (error.name or "HTTP_ERROR").upper().replace(" ", "_"),
            error.description or error.name,
            error.code or 500,
        )

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error: SQLAlchemyError):
        db.session.rollback()
        app.logger.error(
            "Database error on %s %s: %s\n%s",
            request.method,
            request.path,
            error.__class__.__name__,
            traceback.format_exc(),
        )
        return _error(
            ErrorCode.SERVER_ERROR,
            "A server error occurred. Please try again later.",
            500,
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.
        Stack traces never leave the server.
        """
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return _error(
            ErrorCode.SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
            500,
        )


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so the admin panel served from
    another local port can call the API with credentials (cookies).
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all and origin:
            # Credentialed requests require an echoed origin, never "*".
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = (
                "Authorization, Content-Type, X-Admin-Token"
            )

        return response


logging.getLogger("httpx").setLevel(logging.WARNING)
