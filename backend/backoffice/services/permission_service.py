# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Screen / Module Permission Checks

WHY: Master-data screens are gated per scope and per action. Rights come from
the user's primary role (role_permissions) and may be overridden per user
(user_permissions_override, NULL = inherit).

RULES:
- Admins bypass every check
- SCREEN:<scope_key> rights are looked up first
- A SCREEN that does not grant the action falls back to the MODULE named
  by the first dotted segment ("master_data.basic_info.units" -> MODULE:master_data)
- can_navigate requires can_view
- edit / delete / hard_delete / approve / print require can_navigate
- Fail closed: no row anywhere means no right
"""

from __future__ import annotations

from ..extensions import db
from ..models import PERMISSION_FLAGS, PermissionScope, RolePermission, User, UserPermissionOverride


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""


ACTION_FLAGS = {
    "view": "can_view",
    "navigate": "can_navigate",
    "create": "can_create",
    "edit": "can_edit",
    "update": "can_edit",
    "toggle": "can_edit",
    "delete": "can_delete",
    "hard_delete": "can_hard_delete",
    "print": "can_print",
    "approve": "can_approve",
}

NAVIGATE_GATED = {"can_edit", "can_delete", "can_hard_delete", "can_approve", "can_print"}


def scope_name(scope_type: str, scope_key: str) -> str:
    return f"{scope_type.upper()}:{scope_key}"


def module_key(scope_key: str) -> str:
    return (scope_key or "").split(".", 1)[0]


def get_effective_permissions(user: User) -> dict[str, dict[str, bool]]:
    """
    Merge role rows with user overrides.

    Returns {"SCREEN:master_data.products.skus": {"can_view": True, ...}, ...}.
    An override flag of NULL keeps the role value.
    """
    effective: dict[str, dict[str, bool]] = {}

    role_rows = (
        db.session.query(RolePermission, PermissionScope)
        .join(PermissionScope, RolePermission.scope_id == PermissionScope.id)
        .filter(RolePermission.role_id == user.primary_role_id)
        .all()
    )
    for row, scope in role_rows:
        effective[scope_name(scope.scope_type, scope.scope_key)] = {
            flag: bool(getattr(row, flag)) for flag in PERMISSION_FLAGS
        }

    override_rows = (
        db.session.query(UserPermissionOverride, PermissionScope)
        .join(PermissionScope, UserPermissionOverride.scope_id == PermissionScope.id)
        .filter(UserPermissionOverride.user_id == user.id)
        .all()
    )
    for row, scope in override_rows:
        key = scope_name(scope.scope_type, scope.scope_key)
        flags = effective.setdefault(key, {flag: False for flag in PERMISSION_FLAGS})
        for flag in PERMISSION_FLAGS:
            value = getattr(row, flag)
            if value is not None:
                flags[flag] = bool(value)

    return effective


def _grants(flags: dict[str, bool] | None, flag: str) -> bool:
    if not flags or not flags.get(flag):
        return False
    if flag == "can_navigate":
        return bool(flags.get("can_view"))
    if flag in NAVIGATE_GATED:
        return _grants(flags, "can_navigate")
    return True


def has_permission(user: User | None, scope_key: str, action: str, effective: dict | None = None) -> bool:
    """
    True when `user` may perform `action` on the screen `scope_key`.

    The SCREEN row is tried first, then the owning MODULE row. Unknown
    actions are denied.
    """
    if user is None:
        return False
    if user.is_admin:
        return True

    flag = ACTION_FLAGS.get((action or "").lower())
    if flag is None:
        return False

    if effective is None:
        effective = get_effective_permissions(user)
    if _grants(effective.get(scope_name("SCREEN", scope_key)), flag):
        return True
    return _grants(effective.get(scope_name("MODULE", module_key(scope_key))), flag)


def require_permission(user: User | None, scope_key: str, action: str) -> None:
    """Raises PermissionDeniedError if the user lacks the right."""
    if not has_permission(user, scope_key, action):
        raise PermissionDeniedError(f"Missing {action} on {scope_key}")


def get_or_create_scope(scope_type: str, scope_key: str, description: str | None = None) -> PermissionScope:
    scope = db.session.query(PermissionScope).filter_by(
        scope_type=scope_type.upper(), scope_key=scope_key
    ).first()
    if scope:
        return scope
    scope = PermissionScope(scope_type=scope_type.upper(), scope_key=scope_key, description=description)
    db.session.add(scope)
    db.session.flush()
    return scope


def grant_role_permission(role_id: int, scope_type: str, scope_key: str, **flags) -> RolePermission:
    """
    Upsert a role_permissions row; unspecified flags keep their current value
    (false for a new row).
    """
    scope = get_or_create_scope(scope_type, scope_key)
    row = db.session.get(RolePermission, (role_id, scope.id))
    if row is None:
        row = RolePermission(role_id=role_id, scope_id=scope.id)
        for flag in PERMISSION_FLAGS:
            setattr(row, flag, False)
        db.session.add(row)
    for flag, value in flags.items():
        if flag not in PERMISSION_FLAGS:
            raise ValueError(f"Unknown permission flag: {flag}")
        setattr(row, flag, bool(value))
    db.session.flush()
    return row


def set_user_override(user_id: int, scope_type: str, scope_key: str, **flags) -> UserPermissionOverride:
    """Upsert a user override; pass None for a flag to inherit from the role."""
    scope = get_or_create_scope(scope_type, scope_key)
    row = db.session.get(UserPermissionOverride, (user_id, scope.id))
    if row is None:
        row = UserPermissionOverride(user_id=user_id, scope_id=scope.id)
        db.session.add(row)
    for flag, value in flags.items():
        if flag not in PERMISSION_FLAGS:
            raise ValueError(f"Unknown permission flag: {flag}")
        setattr(row, flag, None if value is None else bool(value))
    db.session.flush()
    return row
