"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances (each with its own cache)
           - `flask db migrate` to work without starting the full server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  3. Build the per-app services: TripSnapshotCache and the notifier
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500),
     each rolling back the request's session
  6. Register a custom JSON provider to serialise Decimal as string
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config


class DecimalJSONProvider(DefaultJSONProvider):
    """
    Serialises Decimal as str so amounts never become JS floats.

    Example: Decimal("10.50") → "10.50" (not 10.5)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # Import here (not at module top) to avoid circular imports.
    from backend.app.extensions import NOTIFIER_KEY, TRIP_CACHE_KEY, db, ma
    db.init_app(app)
    ma.init_app(app)

    # Populate SQLAlchemy's MetaData for create_all() and Alembic.
    with app.app_context():
        from backend.app.models import (  # noqa: F401
            expense,
            invitation,
            itinerary,
            member,
            settlement,
            split,
            trip,
        )

    from backend.app.services.notifier import LoggingNotifier
    from backend.app.services.trip_cache import InMemoryCacheBackend, TripSnapshotCache
    app.extensions[TRIP_CACHE_KEY] = TripSnapshotCache(
        backend=InMemoryCacheBackend(),
        ttl_seconds=app.config["TRIP_CACHE_TTL_SECONDS"],
    )
    app.extensions[NOTIFIER_KEY] = LoggingNotifier()

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """Applies LOG_LEVEL to the app logger and the backend.* service loggers."""
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)
    logging.getLogger("backend").setLevel(level)


def _register_blueprints(app: Flask) -> None:
    from backend.app.routes.expenses import expenses_bp
    from backend.app.routes.invitations import invitations_bp
    from backend.app.routes.itinerary import itinerary_bp
    from backend.app.routes.settlements import settlements_bp
    from backend.app.routes.trips import trips_bp

    app.register_blueprint(trips_bp,       url_prefix="/api/v1/trips")
    # expenses_bp owns BOTH /trips/<id>/expenses and /expenses/<id>.
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1/trips")
    # Like expenses_bp: trip-scoped paths plus /invitations/<id> and /itinerary/<id>.
    app.register_blueprint(invitations_bp, url_prefix="/api/v1")
    app.register_blueprint(itinerary_bp,   url_prefix="/api/v1")


def _first_validation_message(messages) -> tuple[str | None, str]:
    """
    Walks marshmallow's (possibly nested) messages to the first leaf.

    {"splits": {0: {"amount": ["..."]}}} → ("splits", "...")
    """
    field = None
    current = messages
    while True:
        if isinstance(current, dict) and current:
            key, current = next(iter(current.items()))
            if field is None and isinstance(key, str) and key != "_schema":
                field = key
        elif isinstance(current, list) and current:
            current = current[0]
        else:
            break
    return field, str(current) if current not in (None, {}, []) else "Invalid input."


def _register_error_handlers(app: Flask) -> None:
    """
    Handlers:
      AppError        → error envelope with its HTTP status
      ValidationError → first schema error as MISSING_FIELD / INVALID_FIELD /
                        a registered code (400)
      HTTPException   → Werkzeug's own status (404 route, 405 method, ...)
      Exception       → INTERNAL_ERROR (500); traceback to the app logger only

    Every handler rolls back first so a failed request never leaves a
    half-written expense or ledger in the session.
    """
    from backend.app.errors import AppError, ErrorCode
    from backend.app.extensions import db

    known_codes = set(vars(ErrorCode).values())

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        db.session.rollback()
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        db.session.rollback()

        field, raw_message = _first_validation_message(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        response_body = {"error": {"code": code, "message": message}}
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        db.session.rollback()
        code = ErrorCode.INVALID_FIELD if error.code == 400 else error.name.upper().replace(" ", "_")
        return jsonify({
            "error": {"code": code, "message": error.description},
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        db.session.rollback()
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development when DEBUG or
    TESTING is on.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """Default message when a ValidationError message IS an error code constant."""
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_CATEGORY": "The category value is not valid.",
        "INVALID_SPLIT_STRATEGY": "split_strategy must be 'EQUAL', 'EXACT' or 'PERCENTAGE'.",
        "INVALID_DATE_RANGE": "end_date must be on or after start_date.",
        "INVALID_TIME_RANGE": "end_time must be after start_time.",
    }
    return _messages.get(code, "Invalid input.")
