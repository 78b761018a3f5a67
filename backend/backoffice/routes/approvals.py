# Overview: Flask routes for the approval queue; review, decide and configure screen policies.

from flask import Blueprint, current_app, g, jsonify, redirect, request
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import require_auth, require_permission
from ..errors import friendly_error_message
from ..i18n import t
from ..services import activity_log_service, approval_service
from ..services.approval_service import ApprovalStateError
from ..ui_cookies import set_ui_error
from ..validation import ConflictError, LockedError, ValidationError, form_list
from .screen import page, saved


BASE_PATH = "/administration/approvals"
SCOPE_KEY = "administration.approvals"

approvals_bp = Blueprint("approvals", __name__, url_prefix=BASE_PATH)


@approvals_bp.get("")
@require_auth
@require_permission("SCREEN", SCOPE_KEY, "view")
def list_route():
    status = (request.args.get("status") or approval_service.PENDING).upper()
    rows = approval_service.list_requests(status)
    return page([row.to_dict() for row in rows], flash_path=BASE_PATH, status=status)


@approvals_bp.get("/<int:request_id>")
@require_auth
@require_permission("SCREEN", SCOPE_KEY, "view")
def detail_route(request_id: int):
    row = approval_service.get_request(request_id)
    history = activity_log_service.list_activity(row.entity_type, row.entity_id)
    return jsonify({**row.to_dict(), "activity": [entry.to_dict() for entry in history]})


@approvals_bp.get("/settings")
@require_auth
@require_permission("SCREEN", SCOPE_KEY, "approve")
def settings_route():
    policies = approval_service.list_policies()
    return jsonify({
        "policies": [p.to_dict() for p in policies],
        "checked": [p.key for p in policies if p.requires_approval],
    })


@approvals_bp.post("/settings")
@require_auth
@require_permission("SCREEN", SCOPE_KEY, "approve")
def save_settings_route():
    keys = form_list(request.form, "policy_keys")
    approval_service.replace_screen_policies(keys, updated_by=g.current_user.id)
    return saved(f"{BASE_PATH}/settings", message_key="approval_settings_saved")


def _decide(request_id: int, decision: str):
    notes = (request.form.get("notes") or "").strip() or None
    try:
        if decision == "approve":
            approval_service.approve_request(request_id, g.current_user, notes)
            message_key = "approval_approved"
        else:
            approval_service.reject_request(request_id, g.current_user, notes)
            message_key = "approval_rejected"
    except (ApprovalStateError, ValidationError, ConflictError, LockedError, SQLAlchemyError) as e:
        current_app.logger.error(
            "[approvals:%s] request=%s error=%s", decision, request_id, e,
            extra={"approval_request_id": request_id, "error": str(e)},
        )
        set_ui_error(t(str(e)) if isinstance(e, ApprovalStateError) else friendly_error_message(e))
        return redirect(BASE_PATH, code=302)
    return saved(BASE_PATH, message_key=message_key)


@approvals_bp.post("/<int:request_id>/approve")
@require_auth
@require_permission("SCREEN", SCOPE_KEY, "approve")
def approve_route(request_id: int):
    return _decide(request_id, "approve")


@approvals_bp.post("/<int:request_id>/reject")
@require_auth
@require_permission("SCREEN", SCOPE_KEY, "approve")
def reject_route(request_id: int):
    return _decide(request_id, "reject")
