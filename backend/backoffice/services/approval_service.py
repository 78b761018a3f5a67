# Overview: Service-layer operations for the approval pipeline; queueing, decisions and policies.

"""
Approval Pipeline

Privileged writes that need review are diverted into a durable PENDING
approval_request instead of being applied.

TWO SURFACES, ONE WRITE PATH:
- intercept()              request-scoped: the route attaches g.approval_request
                           and the pipeline queues it; block=True answers 202
- handle_screen_approval() screen helper: decides per (scope, action) whether
                           this user's write must be queued

Both call submit(), so their durable effect is identical.

ORDERING (submit):
1. INSERT approval_request (status PENDING)
2. INSERT activity_log SUBMIT (same transaction)
3. COMMIT
4. Hand the admin notification off (never awaited, never raises)
If 1 or 2 fails, the transaction rolls back and nothing is notified.

NO DEDUPE: two identical submissions create two PENDING rows.

STATE MACHINE: PENDING -> APPROVED | PENDING -> REJECTED. Both terminal.
Approving a MASTER_DATA_CHANGE replays new_value against the current row
(approval_applier) in the same transaction as the status change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from flask import g, has_request_context, jsonify

from ..extensions import db
from ..i18n import Translator, t as default_t
from ..models import ApprovalPolicy, ApprovalRequest, User
from ..ui_cookies import set_ui_notice
from ..validation import NotFoundError, ValidationError
from . import activity_log_service, approval_notification_service, permission_service
from .approval_notification_service import ApprovalNotice
from backoffice.time_utils import utcnow

logger = logging.getLogger(__name__)

PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"

MASTER_DATA_CHANGE = "MASTER_DATA_CHANGE"
SCREEN_POLICY = "SCREEN"

REASON_ADMIN_BYPASS = "admin_bypass"
REASON_POLICY = "policy_requires_approval"
REASON_PERMISSION_REROUTE = "permission_reroute"
REASON_NOT_REQUIRED = "not_required"


class ApprovalStateError(ValueError):
    """Decision attempted on a request that is no longer PENDING."""


@dataclass(frozen=True)
class ApprovalDecision:
    required: bool
    reason: str


@dataclass(frozen=True)
class ScreenApprovalResult:
    queued: bool
    approval_request_id: int | None = None


def json_safe(value: Any) -> Any:
    """Decimals become int/float so snapshots fit a JSON column."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Decision (pure)
# ---------------------------------------------------------------------------

def policy_requires_approval(policy: ApprovalPolicy | bool | None) -> bool:
    if isinstance(policy, ApprovalPolicy):
        return bool(policy.requires_approval)
    return bool(policy)


def decide_approval(
    policy: ApprovalPolicy | bool | None,
    user: User | None,
    scope_key: str,
    action: str,
    effective: dict | None = None,
) -> ApprovalDecision:
    """
    Should this user's write on (scope_key, action) be queued?

    - Admins are never queued (admin_bypass)
    - A user who lacks the screen right is queued (permission_reroute)
    - Otherwise the policy decides (policy_requires_approval / not_required)

    Pure when `effective` permissions are supplied.
    """
    if user is not None and user.is_admin:
        return ApprovalDecision(False, REASON_ADMIN_BYPASS)

    allowed = permission_service.has_permission(user, scope_key, action, effective=effective)
    if not allowed:
        return ApprovalDecision(True, REASON_PERMISSION_REROUTE)
    if policy_requires_approval(policy):
        return ApprovalDecision(True, REASON_POLICY)
    return ApprovalDecision(False, REASON_NOT_REQUIRED)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def submit(
    *,
    branch_id: int | None,
    requested_by: User | None,
    request_type: str,
    entity_type: str,
    entity_id: Any,
    summary: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
    source: str,
    reason: str | None = None,
    t: Translator | None = None,
) -> int:
    """
    Persist one PENDING request, log SUBMIT, commit, then notify admins.

    Returns:
        The new approval_request id.

    Raises:
        ValidationError("approval_missing_fields") when branch, request type,
        entity type or entity id is missing. Nothing is written.
    """
    if any(_missing(v) for v in (branch_id, request_type, entity_type, entity_id)):
        raise ValidationError("approval_missing_fields")

    entity_id = str(entity_id)
    old_value = json_safe(old_value) if old_value else None
    new_value = json_safe(new_value) if new_value else None
    requested_by_id = requested_by.id if requested_by is not None else None

    try:
        row = ApprovalRequest(
            branch_id=branch_id,
            request_type=request_type,
            entity_type=entity_type,
            entity_id=entity_id,
            summary=summary or None,
            old_value=old_value,
            new_value=new_value,
            status=PENDING,
            requested_by=requested_by_id,
            requested_at=utcnow(),
        )
        db.session.add(row)
        db.session.flush()

        context = {
            "approval_request_id": row.id,
            "request_type": request_type,
            "summary": summary or None,
            "old_value": old_value,
            "new_value": new_value,
            "source": source,
        }
        if reason:
            context["reason"] = reason
        activity_log_service.append_activity(
            entity_type=entity_type,
            entity_id=entity_id,
            action="SUBMIT",
            context=context,
            user_id=requested_by_id,
            branch_id=branch_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception(
            "[approvals] enqueue failed (entity_type=%s entity_id=%s source=%s)",
            entity_type, entity_id, source,
        )
        raise

    logger.info(
        "[approvals] request %s queued (type=%s entity=%s:%s source=%s reason=%s)",
        row.id, request_type, entity_type, entity_id, source, reason,
    )

    notice = ApprovalNotice(
        approval_request_id=row.id,
        request_type=request_type,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        old_value=old_value,
        new_value=new_value,
        requested_by_name=requested_by.username if requested_by is not None else None,
        branch_id=branch_id,
    )
    if t is None:
        approval_notification_service.notify_pending_approval_admins(notice)
    else:
        approval_notification_service.notify_pending_approval_admins(notice, t)

    return row.id


def intercept():
    """
    Queue the request described by g.approval_request.

    g.approval_request keys: branch_id?, request_type, entity_type,
    entity_id, summary?, old_value?, new_value?, block.

    Returns:
        None when there is nothing to queue or block is false (the caller
        continues), else a (response, 202) tuple to return as-is.
    """
    user = getattr(g, "current_user", None)
    request_data = getattr(g, "approval_request", None)
    if user is None or not request_data:
        return None

    branch_id = request_data.get("branch_id") or getattr(g, "branch_id", None)
    approval_request_id = submit(
        branch_id=branch_id,
        requested_by=user,
        request_type=request_data.get("request_type"),
        entity_type=request_data.get("entity_type"),
        entity_id=request_data.get("entity_id"),
        summary=request_data.get("summary"),
        old_value=request_data.get("old_value"),
        new_value=request_data.get("new_value"),
        source="approval-required",
    )
    g.approval_request_id = approval_request_id

    set_ui_notice(default_t("approval_sent"), auto_close=True)

    if request_data.get("block") is True:
        return jsonify({"status": PENDING, "approval_request_id": approval_request_id}), 202
    return None


def lookup_policy(scope_key: str, action: str) -> ApprovalPolicy | None:
    return db.session.query(ApprovalPolicy).filter_by(
        entity_type=SCREEN_POLICY, entity_key=scope_key, action=action
    ).first()


def handle_screen_approval(
    *,
    scope_key: str,
    action: str,
    entity_type: str,
    entity_id: Any = None,
    summary: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
    t: Translator | None = None,
    user: User | None = None,
    branch_id: int | None = None,
) -> ScreenApprovalResult:
    """
    Queue the write when policy or missing permission requires it.

    queued=False means the caller performs the domain write inline.
    """
    translate = t or default_t
    if has_request_context():
        user = user or getattr(g, "current_user", None)
        branch_id = branch_id or getattr(g, "branch_id", None)
    if branch_id is None and user is not None:
        branch_id = user.branch_id

    if user is not None and user.is_admin:
        return ScreenApprovalResult(queued=False)

    decision = decide_approval(lookup_policy(scope_key, action), user, scope_key, action)
    logger.debug("[screen-approval] %s/%s -> %s", scope_key, action, decision)
    if not decision.required:
        return ScreenApprovalResult(queued=False)

    approval_request_id = submit(
        branch_id=branch_id,
        requested_by=user,
        request_type=MASTER_DATA_CHANGE,
        entity_type=entity_type,
        entity_id=str(entity_id if not _missing(entity_id) else "NEW"),
        summary=summary,
        old_value=old_value,
        new_value=new_value,
        source="screen-approval",
        reason=decision.reason,
        t=t,
    )

    if has_request_context():
        set_ui_notice(translate("approval_sent"), auto_close=False, sticky=True)

    return ScreenApprovalResult(queued=True, approval_request_id=approval_request_id)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------

def list_requests(status: str = PENDING, limit: int = 200) -> list[ApprovalRequest]:
    status = (status or PENDING).upper()
    return (
        db.session.query(ApprovalRequest)
        .filter(ApprovalRequest.status == status)
        .order_by(ApprovalRequest.requested_at.desc(), ApprovalRequest.id.desc())
        .limit(limit)
        .all()
    )


def get_request(request_id: int) -> ApprovalRequest:
    row = db.session.get(ApprovalRequest, request_id)
    if row is None:
        raise NotFoundError("approval_request_not_found")
    return row


def _lock_pending(request_id: int) -> ApprovalRequest:
    row = (
        db.session.query(ApprovalRequest)
        .filter(ApprovalRequest.id == request_id)
        .with_for_update()
        .first()
    )
    if row is None:
        raise NotFoundError("approval_request_not_found")
    if row.status != PENDING:
        raise ApprovalStateError("approval_not_pending")
    return row


def approve_request(request_id: int, decided_by: User, notes: str | None = None) -> ApprovalRequest:
    """
    PENDING -> APPROVED, replaying a MASTER_DATA_CHANGE in the same transaction.

    Raises:
        NotFoundError: unknown id
        ApprovalStateError: already decided
        ValidationError / ConflictError / LockedError: the replay was refused
    """
    from . import approval_applier

    try:
        row = _lock_pending(request_id)

        if row.request_type == MASTER_DATA_CHANGE:
            approval_applier.apply_change(row, decided_by.id)

        row.status = APPROVED
        row.decided_by = decided_by.id
        row.decided_at = utcnow()
        row.decision_notes = notes or None

        activity_log_service.append_activity(
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            action="APPROVE",
            context={"approval_request_id": row.id, "request_type": row.request_type, "notes": notes},
            user_id=decided_by.id,
            branch_id=row.branch_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("[approvals] request %s approved by %s", row.id, decided_by.username)
    return row


def reject_request(request_id: int, decided_by: User, notes: str | None = None) -> ApprovalRequest:
    """PENDING -> REJECTED; the stored change is discarded."""
    try:
        row = _lock_pending(request_id)
        row.status = REJECTED
        row.decided_by = decided_by.id
        row.decided_at = utcnow()
        row.decision_notes = notes or None

        activity_log_service.append_activity(
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            action="REJECT",
            context={"approval_request_id": row.id, "request_type": row.request_type, "notes": notes},
            user_id=decided_by.id,
            branch_id=row.branch_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("[approvals] request %s rejected by %s", row.id, decided_by.username)
    return row


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

def list_policies() -> list[ApprovalPolicy]:
    return (
        db.session.query(ApprovalPolicy)
        .order_by(ApprovalPolicy.entity_type, ApprovalPolicy.entity_key, ApprovalPolicy.action)
        .all()
    )


def parse_policy_key(key: str) -> tuple[str, str, str] | None:
    """"SCREEN:master_data.products.skus:create" -> (type, key, action)."""
    parts = (key or "").split(":")
    if len(parts) != 3 or not all(part.strip() for part in parts):
        return None
    return parts[0].strip(), parts[1].strip(), parts[2].strip()


def replace_screen_policies(keys, updated_by: int | None = None) -> list[ApprovalPolicy]:
    """
    Replace every SCREEN policy with the checked keys, all requiring approval.

    Keys that do not parse, or that name another entity type, are ignored.
    """
    try:
        db.session.query(ApprovalPolicy).filter(ApprovalPolicy.entity_type == SCREEN_POLICY).delete(
            synchronize_session=False
        )
        created = []
        seen = set()
        for key in keys:
            parsed = parse_policy_key(key)
            if parsed is None or parsed[0] != SCREEN_POLICY or parsed in seen:
                continue
            seen.add(parsed)
            policy = ApprovalPolicy(
                entity_type=parsed[0],
                entity_key=parsed[1],
                action=parsed[2],
                requires_approval=True,
                updated_by=updated_by,
                updated_at=utcnow(),
            )
            db.session.add(policy)
            created.append(policy)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return created


def set_policy(entity_key: str, action: str, requires_approval: bool,
               entity_type: str = SCREEN_POLICY, updated_by: int | None = None) -> ApprovalPolicy:
    """Upsert a single policy row."""
    policy = db.session.query(ApprovalPolicy).filter_by(
        entity_type=entity_type, entity_key=entity_key, action=action
    ).first()
    if policy is None:
        policy = ApprovalPolicy(entity_type=entity_type, entity_key=entity_key, action=action)
        db.session.add(policy)
    policy.requires_approval = bool(requires_approval)
    policy.updated_by = updated_by
    policy.updated_at = utcnow()
    db.session.commit()
    return policy
