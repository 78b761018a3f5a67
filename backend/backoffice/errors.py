# Overview: Friendly user-facing messages for database errors and app-wide JSON error handlers.

from __future__ import annotations

from flask import Flask, current_app, jsonify
from sqlalchemy.exc import DataError, IntegrityError, StatementError

from .i18n import Translator, t as default_t
from .validation import ConflictError, LockedError, NotFoundError, ValidationError


def _constraint_kind(exc: Exception) -> str | None:
    """
    Classify a DBAPI error by SQLSTATE (PostgreSQL) or message text (SQLite).

    23503 foreign_key_violation, 23505 unique_violation,
    23502 not_null_violation, 22P02 invalid_text_representation.
    """
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == "23503":
        return "foreign_key"
    if code == "23505":
        return "unique"
    if code == "23502":
        return "not_null"
    if code == "22P02":
        return "invalid"

    message = str(orig if orig is not None else exc).lower()
    if "foreign key" in message:
        return "foreign_key"
    if "unique" in message or "duplicate" in message:
        return "unique"
    if "not null" in message:
        return "not_null"
    if "check constraint" in message or "invalid input" in message:
        return "invalid"
    return None


def friendly_error_message(exc: Exception | str | None, t: Translator = default_t) -> str:
    """
    Map an exception to a translated message safe to show users.

    Raw database text never reaches the user; domain errors raised by this
    package already carry a message key or a readable message.
    """
    if exc is None:
        return t("error_generic")
    if isinstance(exc, str):
        if "violates foreign key constraint" in exc.lower():
            return t("error_record_in_use")
        return exc

    if isinstance(exc, (IntegrityError, DataError)):
        kind = _constraint_kind(exc)
        if kind == "foreign_key":
            return t("error_record_in_use")
        if kind == "unique":
            return t("error_duplicate_record")
        if kind == "not_null":
            return t("error_required_fields")
        if kind == "invalid":
            return t("error_invalid_value")
        return t("error_unable_save")

    if isinstance(exc, StatementError):
        return t("error_unable_save")

    if isinstance(exc, (ValidationError, ConflictError, LockedError, NotFoundError)):
        return t(str(exc)) if str(exc) else t("error_generic")

    return t("error_generic")


def register_error_handlers(app: Flask) -> None:
    """JSON bodies for errors that escape the route-level handling."""

    @app.errorhandler(404)
    def not_found(_e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(NotFoundError)
    def domain_not_found(e):
        return jsonify({"error": friendly_error_message(e)}), 404

    @app.errorhandler(500)
    def internal_error(e):
        current_app.logger.exception("Unhandled error", exc_info=getattr(e, "original_exception", e))
        return jsonify({"error": "Internal server error"}), 500
