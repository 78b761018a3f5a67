# backend/backoffice/__init__.py
import hmac
import logging
import secrets
import uuid

from flask import Flask, g, jsonify, request

from .config import Config
from .extensions import db, migrate


CSRF_COOKIE = "csrf_token"
CSRF_FIELD = "_csrf"
CSRF_HEADER = "X-CSRF-Token"
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

# Bearer-token JSON endpoints that never carry the cookie
CSRF_EXEMPT_PREFIXES = ("/auth/login", "/api/")


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex

    @app.before_request
    def csrf_protect():
        """
        Double-submit cookie check for state-changing requests.

        SECURITY: the form field or header must equal the csrf_token cookie.
        """
        if request.method in SAFE_METHODS or request.path.startswith(CSRF_EXEMPT_PREFIXES):
            return None
        cookie = request.cookies.get(CSRF_COOKIE) or ""
        submitted = request.form.get(CSRF_FIELD) or request.headers.get(CSRF_HEADER) or ""
        if not cookie or not hmac.compare_digest(cookie, submitted):
            app.logger.warning(
                "[csrf] rejected %s %s", request.method, request.path,
                extra={"request_id": g.get("request_id")},
            )
            return jsonify({"error": "Invalid CSRF token"}), 403
        return None

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.basic_info import basic_info_bp
    from .routes.uom_conversions import uom_conversions_bp
    from .routes.skus import skus_bp
    from .routes.approvals import approvals_bp
    from .routes.api import api_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(uom_conversions_bp)
    app.register_blueprint(basic_info_bp)
    app.register_blueprint(skus_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(api_bp)

    @app.after_request
    def issue_csrf_cookie(response):
        if not request.cookies.get(CSRF_COOKIE):
            response.set_cookie(CSRF_COOKIE, secrets.token_urlsafe(32), path="/", samesite="Lax")
        return response

    @app.after_request
    def echo_request_id(response):
        request_id = g.get("request_id")
        if request_id:
            response.headers["X-Request-Id"] = request_id
        return response

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
