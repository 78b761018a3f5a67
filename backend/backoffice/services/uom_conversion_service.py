# Overview: Service-layer operations for UOM conversions (1 from_uom = factor x to_uom).

from __future__ import annotations

import logging
from decimal import Decimal

from ..extensions import db
from ..models import Uom, UomConversion
from ..validation import ConflictError, NotFoundError, ValidationError, parse_decimal, parse_int
from . import activity_log_service, approval_service
from .approval_service import ScreenApprovalResult
from .basic_info_resources import SCOPE_PREFIX, entity_type_for
from backoffice.time_utils import utcnow

logger = logging.getLogger(__name__)

SCOPE_KEY = f"{SCOPE_PREFIX}.uom_conversions"
ENTITY_TYPE = entity_type_for("uom-conversions")


def normalize_payload(data) -> dict:
    """{from_uom_id, to_uom_id, factor} as numbers; unparsable values become 0."""
    data = data or {}
    factor = parse_decimal(data.get("factor"))
    return {
        "from_uom_id": parse_int(data.get("from_uom_id")) or 0,
        "to_uom_id": parse_int(data.get("to_uom_id")) or 0,
        "factor": factor if factor is not None else Decimal("0"),
    }


def validate_payload(payload: dict) -> dict:
    if not payload.get("from_uom_id") or not payload.get("to_uom_id"):
        raise ValidationError("error_required_fields")
    if payload["factor"] <= 0:
        raise ValidationError("error_invalid_factor")
    if payload["from_uom_id"] == payload["to_uom_id"]:
        raise ValidationError("error_same_uom")
    return payload


def _check_pair(payload: dict, exclude_id: int | None = None) -> None:
    for uom_id in (payload["from_uom_id"], payload["to_uom_id"]):
        if db.session.get(Uom, uom_id) is None:
            raise ValidationError("error_invalid_value")
    query = db.session.query(UomConversion.id).filter(
        UomConversion.from_uom_id == payload["from_uom_id"],
        UomConversion.to_uom_id == payload["to_uom_id"],
    )
    if exclude_id is not None:
        query = query.filter(UomConversion.id != exclude_id)
    if db.session.query(query.exists()).scalar():
        raise ConflictError("error_duplicate_record")


def list_conversions() -> list[UomConversion]:
    return db.session.query(UomConversion).order_by(UomConversion.id.desc()).all()


def list_active_uoms() -> list[Uom]:
    return db.session.query(Uom).filter(Uom.is_active.is_(True)).order_by(Uom.code.asc()).all()


def get_conversion(conversion_id: int) -> UomConversion:
    row = db.session.get(UomConversion, conversion_id)
    if row is None:
        raise NotFoundError("error_not_found")
    return row


# Domain writes (flush only)

def perform_create(payload: dict, actor_id: int | None) -> UomConversion:
    payload = validate_payload(normalize_payload(payload))
    _check_pair(payload)
    row = UomConversion(**payload, created_by=actor_id)
    db.session.add(row)
    db.session.flush()
    return row


def perform_update(conversion_id: int, payload: dict, actor_id: int | None) -> UomConversion:
    payload = validate_payload(normalize_payload(payload))
    row = get_conversion(conversion_id)
    _check_pair(payload, exclude_id=row.id)
    row.from_uom_id = payload["from_uom_id"]
    row.to_uom_id = payload["to_uom_id"]
    row.factor = payload["factor"]
    row.updated_by = actor_id
    row.updated_at = utcnow()
    db.session.flush()
    return row


def perform_toggle(conversion_id: int, actor_id: int | None, is_active: bool | None = None) -> UomConversion:
    row = get_conversion(conversion_id)
    row.is_active = (not row.is_active) if is_active is None else bool(is_active)
    row.updated_by = actor_id
    row.updated_at = utcnow()
    db.session.flush()
    return row


def perform_delete(conversion_id: int) -> None:
    db.session.delete(get_conversion(conversion_id))
    db.session.flush()


# Screen operations

def _commit(action: str, entity_id, context: dict) -> None:
    activity_log_service.append_activity(
        entity_type=ENTITY_TYPE, entity_id=entity_id, action=action, context=context
    )
    db.session.commit()


def create_conversion(data, user=None) -> ScreenApprovalResult:
    payload = validate_payload(normalize_payload(data))

    approval = approval_service.handle_screen_approval(
        scope_key=SCOPE_KEY,
        action="create",
        entity_type=ENTITY_TYPE,
        entity_id="NEW",
        summary="Create uom_conversions",
        new_value=payload,
        user=user,
    )
    if approval.queued:
        return approval

    try:
        row = perform_create(payload, user.id if user else None)
        _commit("CREATE", row.id, {"new_value": payload})
    except Exception:
        db.session.rollback()
        raise
    return approval


def update_conversion(conversion_id: int, data, user=None) -> ScreenApprovalResult:
    payload = validate_payload(normalize_payload(data))
    existing = get_conversion(conversion_id)
    old_value = existing.to_dict()

    approval = approval_service.handle_screen_approval(
        scope_key=SCOPE_KEY,
        action="edit",
        entity_type=ENTITY_TYPE,
        entity_id=conversion_id,
        summary="Edit uom_conversions",
        old_value=old_value,
        new_value={"_action": "update", **payload},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        perform_update(conversion_id, payload, user.id if user else None)
        _commit("UPDATE", conversion_id, {"old_value": old_value, "new_value": payload})
    except Exception:
        db.session.rollback()
        raise
    return approval


def toggle_conversion(conversion_id: int, user=None) -> ScreenApprovalResult:
    current = get_conversion(conversion_id)
    target = not current.is_active

    approval = approval_service.handle_screen_approval(
        scope_key=SCOPE_KEY,
        action="delete",
        entity_type=ENTITY_TYPE,
        entity_id=conversion_id,
        summary=f"{'Activate' if target else 'Deactivate'} uom_conversions",
        old_value={"is_active": current.is_active},
        new_value={"_action": "toggle", "is_active": target},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        perform_toggle(conversion_id, user.id if user else None, is_active=target)
        _commit("TOGGLE", conversion_id, {"is_active": target})
    except Exception:
        db.session.rollback()
        raise
    return approval


def delete_conversion(conversion_id: int, user=None) -> ScreenApprovalResult:
    existing = get_conversion(conversion_id)
    old_value = existing.to_dict()

    approval = approval_service.handle_screen_approval(
        scope_key=SCOPE_KEY,
        action="delete",
        entity_type=ENTITY_TYPE,
        entity_id=conversion_id,
        summary="Delete uom_conversions",
        old_value=old_value,
        new_value={"_action": "delete"},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        perform_delete(conversion_id)
        _commit("DELETE", conversion_id, {"old_value": old_value})
    except Exception:
        db.session.rollback()
        raise
    logger.info("[uom-conversions] deleted #%s", conversion_id)
    return approval
