# Overview: Service-layer operations for basic-info masters; generic CRUD over resource descriptors.

"""
Generic Basic-Info CRUD

Two layers:
- perform_*  the domain write only: flush, never commit. Shared by the
             inline screen path and the approval applier (approved requests
             replay through the same code).
- *_record   the screen operation: validate, ask the approval pipeline,
             then either queue or perform + activity log + commit.

RULES:
- Required fields missing -> ValidationError("error_required_fields")
- UOM code must be unique case-insensitively -> ConflictError("unit_code_exists")
- UOM code cannot change while items or conversions reference the unit
  -> LockedError("error_unit_code_locked")
- auto_code resources derive `code` from the name on create
- A blank name_ur is filled by the translation service; failure leaves it
  blank and never blocks the save
- Item-type maps are replaced wholesale in the same transaction
"""

from __future__ import annotations

import logging
from typing import Any

from ..extensions import db
from ..models import ITEM_TYPES, Item, Uom, UomConversion
from ..validation import (
    ConflictError,
    LockedError,
    NotFoundError,
    ValidationError,
    coerce_column_value,
    form_list,
    parse_form_bool,
    parse_int,
)
from . import activity_log_service, approval_service, entity_code_service, translation_service
from .approval_service import ScreenApprovalResult
from .basic_info_resources import (
    CHECKBOX,
    MULTI_CHECKBOX,
    SELECT,
    ResourceDescriptor,
    get_descriptor,
)
from backoffice.time_utils import utcnow

logger = logging.getLogger(__name__)

META_KEYS = ("_action", "_summary", "item_types")


def get_resource(slug: str) -> ResourceDescriptor:
    resource = get_descriptor(slug)
    if resource is None:
        raise NotFoundError("error_page_not_found")
    return resource


# ---------------------------------------------------------------------------
# Form values
# ---------------------------------------------------------------------------

def build_values(resource: ResourceDescriptor, form) -> dict:
    """
    Normalize a submitted form (MultiDict or plain dict) to field values.

    checkbox -> bool, multi_checkbox -> list, empty select -> None,
    everything else a trimmed string.
    """
    values: dict[str, Any] = {}
    for spec in resource.fields:
        raw = form.get(spec.name) if form is not None else None
        if spec.kind == CHECKBOX:
            values[spec.name] = parse_form_bool(raw)
        elif spec.kind == MULTI_CHECKBOX:
            values[spec.name] = [str(v).strip() for v in form_list(form, spec.name) if str(v).strip()]
        elif spec.kind == SELECT:
            text = "" if raw is None else str(raw).strip()
            values[spec.name] = text or None
        else:
            values[spec.name] = "" if raw is None else str(raw).strip()
    return values


def validate_values(resource: ResourceDescriptor, values: dict) -> dict:
    """
    Check required fields and select options; coerce foreign keys to int.

    Returns the cleaned values (a new dict).
    """
    cleaned = dict(values)
    for spec in resource.fields:
        value = cleaned.get(spec.name)
        if spec.required and (value is None or value == "" or value == []):
            raise ValidationError("error_required_fields")

        if spec.kind == SELECT and value is not None:
            if spec.options and value not in spec.options:
                raise ValidationError("error_invalid_value")
            if spec.foreign_model is not None:
                fk = parse_int(value)
                if fk is None or db.session.get(spec.foreign_model, fk) is None:
                    raise ValidationError("error_invalid_value")
                cleaned[spec.name] = fk

        if spec.kind == MULTI_CHECKBOX:
            allowed = spec.options or ITEM_TYPES
            if any(v not in allowed for v in value or []):
                raise ValidationError("error_invalid_value")
            cleaned[spec.name] = list(dict.fromkeys(value or []))
    return cleaned


def fill_urdu_name(resource: ResourceDescriptor, values: dict) -> dict:
    """Best-effort name_ur from name when left blank."""
    if "name_ur" not in resource.field_names or (values.get("name_ur") or "").strip():
        return values
    translated = translation_service.try_resolve(values.get("name"), resource.translate_mode)
    if translated:
        values = {**values, "name_ur": translated}
    return values


def _column_values(resource: ResourceDescriptor, values: dict) -> dict:
    """Strip meta keys and coerce to column types."""
    columns = resource.model.__table__.columns
    data = {}
    for key, value in values.items():
        if key in META_KEYS or key not in columns:
            continue
        if key == "name_ur" and value == "":
            value = None
        data[key] = coerce_column_value(columns[key], value)
    return data


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------

def get_row(resource: ResourceDescriptor, row_id: int):
    row = db.session.get(resource.model, row_id)
    if row is None:
        raise NotFoundError("error_not_found")
    return row


def get_item_types(resource: ResourceDescriptor, row_id: int) -> list[str]:
    mapping = resource.item_type_map
    if mapping is None:
        return []
    key = getattr(mapping.model, mapping.key)
    rows = db.session.query(mapping.model.item_type).filter(key == row_id).order_by(mapping.model.item_type).all()
    return [r[0] for r in rows]


def snapshot(resource: ResourceDescriptor, row) -> dict:
    data = row.to_dict()
    if resource.item_type_map is not None:
        data["item_types"] = get_item_types(resource, row.id)
    return data


def list_rows(resource: ResourceDescriptor) -> list[dict]:
    rows = db.session.query(resource.model).order_by(resource.model.id.desc()).all()
    return [snapshot(resource, row) for row in rows]


def _replace_item_types(resource: ResourceDescriptor, row_id: int, item_types: list[str]) -> None:
    mapping = resource.item_type_map
    key = getattr(mapping.model, mapping.key)
    db.session.query(mapping.model).filter(key == row_id).delete(synchronize_session=False)
    for item_type in dict.fromkeys(item_types):
        db.session.add(mapping.model(**{mapping.key: row_id, "item_type": item_type}))


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def _unit_code_taken(code: str, exclude_id: int | None = None) -> bool:
    return entity_code_service.column_exists_probe(Uom, "code", exclude_id=exclude_id)(code)


def unit_in_use(uom_id: int) -> bool:
    used_by_items = db.session.query(
        db.session.query(Item.id).filter(Item.base_uom_id == uom_id).exists()
    ).scalar()
    if used_by_items:
        return True
    return db.session.query(
        db.session.query(UomConversion.id)
        .filter(db.or_(UomConversion.from_uom_id == uom_id, UomConversion.to_uom_id == uom_id))
        .exists()
    ).scalar()


def check_create(resource: ResourceDescriptor, values: dict) -> None:
    if resource.model is Uom:
        code = (values.get("code") or "").strip()
        if code and _unit_code_taken(code):
            raise ConflictError("unit_code_exists")


def check_update(resource: ResourceDescriptor, row, values: dict) -> None:
    if resource.model is not Uom or "code" not in values:
        return
    new_code = (values.get("code") or "").strip()
    if new_code == row.code:
        return
    if unit_in_use(row.id):
        raise LockedError("error_unit_code_locked")
    if new_code and _unit_code_taken(new_code, exclude_id=row.id):
        raise ConflictError("unit_code_exists")


# ---------------------------------------------------------------------------
# Domain writes (flush only)
# ---------------------------------------------------------------------------

def perform_create(resource: ResourceDescriptor, values: dict, actor_id: int | None):
    check_create(resource, values)
    data = _column_values(resource, values)
    if resource.auto_code:
        data["code"] = entity_code_service.generate_unique_code(
            name=data.get("name"),
            exists=entity_code_service.column_exists_probe(resource.model, "code"),
        )
    row = resource.model(**data, created_by=actor_id)
    db.session.add(row)
    db.session.flush()
    if resource.item_type_map is not None and "item_types" in values:
        _replace_item_types(resource, row.id, values["item_types"])
        db.session.flush()
    return row


def perform_update(resource: ResourceDescriptor, row_id: int, values: dict, actor_id: int | None):
    row = get_row(resource, row_id)
    check_update(resource, row, values)
    for key, value in _column_values(resource, values).items():
        if key == "code" and resource.auto_code:
            continue
        setattr(row, key, value)
    row.updated_by = actor_id
    row.updated_at = utcnow()
    if resource.item_type_map is not None and "item_types" in values:
        _replace_item_types(resource, row.id, values["item_types"])
    db.session.flush()
    return row


def perform_toggle(resource: ResourceDescriptor, row_id: int, actor_id: int | None, is_active: bool | None = None):
    row = get_row(resource, row_id)
    row.is_active = (not row.is_active) if is_active is None else bool(is_active)
    row.updated_by = actor_id
    row.updated_at = utcnow()
    db.session.flush()
    return row


def perform_delete(resource: ResourceDescriptor, row_id: int) -> None:
    row = get_row(resource, row_id)
    if resource.item_type_map is not None:
        _replace_item_types(resource, row.id, [])
    db.session.delete(row)
    db.session.flush()


# ---------------------------------------------------------------------------
# Screen operations
# ---------------------------------------------------------------------------

def _actor_id(user) -> int | None:
    return user.id if user is not None else None


def _summary(verb: str, resource: ResourceDescriptor, values: dict | None = None) -> str:
    name = (values or {}).get("name")
    return f"{verb} {resource.title_key}" + (f": {name}" if name else "")


def _finish(resource: ResourceDescriptor, action: str, entity_id, context: dict) -> None:
    activity_log_service.append_activity(
        entity_type=resource.entity_type,
        entity_id=entity_id,
        action=action,
        context={"resource": resource.slug, **context},
    )
    db.session.commit()


def create_record(resource: ResourceDescriptor, values: dict, user=None) -> ScreenApprovalResult:
    """
    Validate and create, or queue the create for approval.

    Raises:
        ValidationError / ConflictError: the write was refused
    """
    values = fill_urdu_name(resource, validate_values(resource, values))
    check_create(resource, values)

    approval = approval_service.handle_screen_approval(
        scope_key=resource.scope_key,
        action="create",
        entity_type=resource.entity_type,
        entity_id="NEW",
        summary=_summary("Create", resource, values),
        new_value=values,
        user=user,
    )
    if approval.queued:
        return approval

    try:
        row = perform_create(resource, values, _actor_id(user))
        _finish(resource, "CREATE", row.id, {"new_value": values})
    except Exception:
        db.session.rollback()
        raise
    logger.info("[basic-info:create] %s #%s", resource.slug, row.id)
    return approval


def update_record(resource: ResourceDescriptor, row_id: int, values: dict, user=None) -> ScreenApprovalResult:
    values = fill_urdu_name(resource, validate_values(resource, values))
    row = get_row(resource, row_id)
    check_update(resource, row, values)
    old_value = snapshot(resource, row)

    approval = approval_service.handle_screen_approval(
        scope_key=resource.scope_key,
        action="edit",
        entity_type=resource.entity_type,
        entity_id=row_id,
        summary=_summary("Edit", resource, values),
        old_value=old_value,
        new_value={"_action": "update", **values},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        perform_update(resource, row_id, values, _actor_id(user))
        _finish(resource, "UPDATE", row_id, {"old_value": old_value, "new_value": values})
    except Exception:
        db.session.rollback()
        raise
    logger.info("[basic-info:update] %s #%s", resource.slug, row_id)
    return approval


def toggle_record(resource: ResourceDescriptor, row_id: int, user=None) -> ScreenApprovalResult:
    row = get_row(resource, row_id)
    target = not row.is_active

    approval = approval_service.handle_screen_approval(
        scope_key=resource.scope_key,
        action="delete",
        entity_type=resource.entity_type,
        entity_id=row_id,
        summary=_summary("Activate" if target else "Deactivate", resource, {"name": row.name}),
        old_value={"is_active": row.is_active},
        new_value={"_action": "toggle", "is_active": target},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        perform_toggle(resource, row_id, _actor_id(user), is_active=target)
        _finish(resource, "TOGGLE", row_id, {"is_active": target})
    except Exception:
        db.session.rollback()
        raise
    return approval


def delete_record(resource: ResourceDescriptor, row_id: int, user=None) -> ScreenApprovalResult:
    row = get_row(resource, row_id)
    old_value = snapshot(resource, row)

    approval = approval_service.handle_screen_approval(
        scope_key=resource.scope_key,
        action="delete",
        entity_type=resource.entity_type,
        entity_id=row_id,
        summary=_summary("Delete", resource, {"name": row.name}),
        old_value=old_value,
        new_value={"_action": "delete"},
        user=user,
    )
    if approval.queued:
        return approval

    try:
        perform_delete(resource, row_id)
        _finish(resource, "DELETE", row_id, {"old_value": old_value})
    except Exception:
        db.session.rollback()
        raise
    logger.info("[basic-info:delete] %s #%s", resource.slug, row_id)
    return approval
