# Overview: Service-layer operations for the activity log; append-only audit rows with sanitized context.

"""
Activity Log Service

WHY: Every privileged write, approval submission and approval decision is
attributable. Rows are appended in the caller's transaction (flush, no
commit) so an audit row never exists without the write it describes.

SANITIZING:
- Secrets (_csrf, password, password_hash, token, secret, secret_enc) are
  dropped, case-insensitively
- Nesting deeper than MAX_DEPTH collapses to "[truncated]"
- Lists keep their first MAX_ITEMS entries
- Strings longer than MAX_STRING keep MAX_STRING chars plus "..."
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from flask import g, has_request_context, request

from ..extensions import db
from ..models import ActivityLog

ACTIONS = ("CREATE", "UPDATE", "DELETE", "TOGGLE", "SUBMIT", "APPROVE", "REJECT")

MAX_DEPTH = 4
MAX_ITEMS = 40
MAX_STRING = 400
SENSITIVE_KEYS = {"_csrf", "password", "password_hash", "token", "secret", "secret_enc"}


def sanitize_for_audit(value: Any, depth: int = 0) -> Any:
    if depth > MAX_DEPTH:
        return "[truncated]"

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, str):
        return value if len(value) <= MAX_STRING else value[:MAX_STRING] + "..."
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            if str(key).lower() in SENSITIVE_KEYS:
                continue
            cleaned[str(key)] = sanitize_for_audit(item, depth + 1)
        return cleaned
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_audit(item, depth + 1) for item in list(value)[:MAX_ITEMS]]

    return sanitize_for_audit(str(value), depth)


def append_activity(
    *,
    entity_type: str,
    action: str,
    entity_id: Any = None,
    context: dict | None = None,
    user_id: int | None = None,
    branch_id: int | None = None,
) -> ActivityLog:
    """
    Append one activity row inside the current transaction.

    user_id / branch_id default to the authenticated request context.
    """
    action = (action or "").upper()
    if action not in ACTIONS:
        raise ValueError(f"Invalid activity action: {action}")

    ip_address = None
    if has_request_context():
        ip_address = request.remote_addr
        if user_id is None and getattr(g, "current_user", None) is not None:
            user_id = g.current_user.id
        if branch_id is None:
            branch_id = getattr(g, "branch_id", None)

    row = ActivityLog(
        branch_id=branch_id,
        user_id=user_id,
        entity_type=entity_type,
        entity_id=None if entity_id is None else str(entity_id),
        action=action,
        context_json=sanitize_for_audit(context or {}),
        ip_address=ip_address,
    )
    db.session.add(row)
    db.session.flush()
    return row


def list_activity(entity_type: str | None = None, entity_id: Any = None, limit: int = 100) -> list[ActivityLog]:
    query = db.session.query(ActivityLog)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(ActivityLog.entity_id == str(entity_id))
    return query.order_by(ActivityLog.id.desc()).limit(limit).all()
