# Overview: Replays an approved MASTER_DATA_CHANGE request against the current data.

"""
Approval Applier

Called by approval_service.approve_request inside its transaction; never
commits. The stored new_value is replayed against the CURRENT row, not the
old_value snapshot, through the same domain writes the screens use inline.

new_value._action selects the write:
- create  (default when entity_id is "NEW")
- update  (default otherwise)
- toggle  uses new_value.is_active when present, else flips
- delete

Meta keys (_action, _summary, item_types) never reach a column; item_types
replaces the item-type map wholesale.
"""

from __future__ import annotations

import logging

from ..models import ApprovalRequest
from ..validation import NotFoundError, ValidationError, parse_int
from . import basic_info_service, sku_service, uom_conversion_service
from .basic_info_resources import get_descriptor_by_entity_type

logger = logging.getLogger(__name__)

NEW_ENTITY_ID = "NEW"
ACTIONS = ("create", "update", "toggle", "delete")


def resolve_action(row: ApprovalRequest) -> str:
    new_value = row.new_value or {}
    action = str(new_value.get("_action") or "").strip().lower()
    if not action:
        action = "create" if str(row.entity_id).upper() == NEW_ENTITY_ID else "update"
    if action not in ACTIONS:
        raise ValidationError("approval_apply_failed")
    return action


def _target_id(row: ApprovalRequest) -> int:
    target = parse_int(row.entity_id)
    if target is None:
        raise NotFoundError("error_not_found")
    return target


def _toggle_state(new_value: dict) -> bool | None:
    value = new_value.get("is_active")
    return None if value is None else bool(value)


def apply_change(row: ApprovalRequest, user_id: int | None) -> None:
    """
    Perform the write described by `row` (flush only).

    Raises:
        ValidationError: unknown entity type or action
        NotFoundError / ConflictError / LockedError: from the domain write
    """
    action = resolve_action(row)
    new_value = dict(row.new_value or {})
    entity_type = row.entity_type

    if entity_type == sku_service.ENTITY_TYPE:
        _apply_sku(row, action, new_value, user_id)
    elif entity_type == uom_conversion_service.ENTITY_TYPE:
        _apply_uom_conversion(row, action, new_value, user_id)
    else:
        resource = get_descriptor_by_entity_type(entity_type)
        if resource is None:
            raise ValidationError("approval_apply_failed")
        if action == "create":
            basic_info_service.perform_create(resource, new_value, user_id)
        elif action == "update":
            basic_info_service.perform_update(resource, _target_id(row), new_value, user_id)
        elif action == "toggle":
            basic_info_service.perform_toggle(resource, _target_id(row), user_id, _toggle_state(new_value))
        else:
            basic_info_service.perform_delete(resource, _target_id(row))

    logger.info(
        "[approval-applier] applied request %s (%s %s:%s)",
        row.id, action, entity_type, row.entity_id,
    )


def _apply_uom_conversion(row, action, new_value, user_id):
    if action == "create":
        uom_conversion_service.perform_create(new_value, user_id)
    elif action == "update":
        uom_conversion_service.perform_update(_target_id(row), new_value, user_id)
    elif action == "toggle":
        uom_conversion_service.perform_toggle(_target_id(row), user_id, _toggle_state(new_value))
    else:
        uom_conversion_service.perform_delete(_target_id(row))


def _apply_sku(row, action, new_value, user_id):
    if action == "create":
        request = sku_service.ExpansionRequest.from_mapping(new_value)
        sku_service.expand_variants(request, user_id, commit=False)
    elif action == "update":
        payload = {k: v for k, v in new_value.items() if k not in basic_info_service.META_KEYS}
        if set(payload) == {"sale_rate"}:
            sku_service.update_rate(_target_id(row), payload["sale_rate"], user_id, commit=False)
        else:
            sku_service.edit_variant(_target_id(row), payload, user_id, commit=False)
    elif action == "toggle":
        sku_service.toggle_variant(_target_id(row), user_id, _toggle_state(new_value), commit=False)
    else:
        sku_service.delete_variant(_target_id(row), commit=False)
