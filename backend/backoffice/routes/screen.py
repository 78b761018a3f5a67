# Overview: Shared helpers for JSON master-data screens (post-redirect-get with flash cookies).

from __future__ import annotations

from flask import current_app, g, jsonify, redirect

from ..errors import friendly_error_message
from ..i18n import t
from ..services import permission_service
from ..ui_cookies import consume_flash, consume_ui_error, consume_ui_notice, set_flash, set_ui_error, set_ui_notice


def page(items, *, flash_path: str, flash_type: str | None = None, **extra):
    """
    List response with the single-use feedback payloads.

    A flash written for another screen under the same path is consumed but
    not returned.
    """
    flash = consume_flash(flash_path)
    if flash_type is not None and isinstance(flash, dict) and flash.get("type") != flash_type:
        flash = None
    modal_mode = flash.get("modalMode") if isinstance(flash, dict) else "create"
    return jsonify({
        "items": items,
        "notice": consume_ui_notice(),
        "flash": flash,
        "error": consume_ui_error(),
        "modal_open": modal_mode in ("create", "edit") if flash else False,
        "modal_mode": modal_mode,
        **extra,
    })


def forbid_unless(scope_key: str, action: str):
    """403 response when the current user lacks the right, else None."""
    if permission_service.has_permission(g.current_user, scope_key, action):
        return None
    return jsonify({
        "error": "Permission denied",
        "required_permission": f"SCREEN:{scope_key}:{action}",
    }), 403


def saved(list_path: str, approval=None, message_key: str = "saved_successfully"):
    """Redirect after a successful or queued write."""
    if approval is None or not approval.queued:
        set_ui_notice(t(message_key))
    return redirect(list_path, code=302)


def failed(exc, *, log_tag: str, list_path: str, flash_path: str, flash_type: str,
           values: dict | None, modal_mode: str, entity_id=None):
    """
    Log the original error, store a friendly message, redirect to the list.

    Create/edit failures re-open the modal through the flash cookie; delete
    and toggle failures surface through ui_error.
    """
    current_app.logger.error(
        "%s type=%s id=%s error=%s",
        log_tag, flash_type, entity_id, exc,
        extra={
            "route_type": flash_type,
            "entity_id": entity_id,
            "error": str(exc),
            "request_id": getattr(g, "request_id", None),
        },
    )
    message = friendly_error_message(exc)
    if modal_mode == "delete":
        set_ui_error(message)
    set_flash(flash_path, type=flash_type, values=values or {}, error=message, modal_mode=modal_mode)
    return redirect(list_path, code=302)
