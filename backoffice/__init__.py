# backoffice/__init__.py
from __future__ import annotations

import logging

from flask import Flask, jsonify
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from .errors import BackofficeError
from .extensions import db, limiter, migrate
from .settings import Config


def create_app(config_object=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    app.json.sort_keys = False
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Register Blueprints
    # ======================
    from .routes import main
    from .partners import partners

    app.register_blueprint(main)
    app.register_blueprint(partners)

    # ======================
    # Domain errors -> JSON
    # ======================
    @app.errorhandler(BackofficeError)
    def backoffice_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(DBIntegrityError)
    def db_integrity_error(e):
        db.session.rollback()
        app.logger.warning("Database integrity error: %s", e.orig)
        return jsonify({"error": "integrity_error", "message": "The change conflicts with existing data."}), 409

    # ======================
    # Rate limit error handler
    # ======================
    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({"error": "rate_limited", "message": "Too many requests. Please try again later."}), 429

    # ======================
    # Not found / method handlers
    # ======================
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not_found", "message": "Resource not found."}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method_not_allowed", "message": "Method not allowed."}), 405

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"error": "server_error", "message": "Something went wrong. Please try again."}), 500

    return app
