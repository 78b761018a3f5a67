from __future__ import annotations

import sqlalchemy as sa

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Branch(db.Model):
    """
    Physical branch (factory, warehouse, shop).

    BRANCH SCOPE: Every durable write records the acting branch. Users act in
    their default branch unless they explicitly pick another branch they are
    mapped to (UserBranch).
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=False)
    name_ur = db.Column(db.String(120), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "name_ur": self.name_ur,
            "city": self.city,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class RoleTemplate(db.Model):
    """
    Prebuilt role a user carries as their primary role.

    A role named "admin" (case/whitespace-insensitive) marks administrators:
    they bypass screen permissions and receive approval notifications.
    """
    __tablename__ = "role_templates"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    name_ur = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    @property
    def is_admin(self) -> bool:
        return (self.name or "").strip().lower() == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "name_ur": self.name_ur,
            "description": self.description,
            "is_active": self.is_active,
        }


class User(db.Model):
    """
    User accounts for authentication and attribution.

    WHY: Every action must be attributable. No shared logins.
    status is free text restricted to active/inactive (case/space tolerant).
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(
            "lower(trim(status)) IN ('active', 'inactive')",
            name="ck_users_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name_ur = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    primary_role_id = db.Column(db.Integer, db.ForeignKey("role_templates.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="Active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    primary_role = db.relationship("RoleTemplate", backref=db.backref("users", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("default_users", lazy=True))

    @property
    def is_active(self) -> bool:
        return (self.status or "").strip().lower() == "active"

    @property
    def is_admin(self) -> bool:
        return bool(self.primary_role and self.primary_role.is_admin)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "primary_role_id": self.primary_role_id,
            "role": self.primary_role.name if self.primary_role else None,
            "branch_id": self.branch_id,
            "status": self.status,
            "is_admin": self.is_admin,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class UserBranch(db.Model):
    """Branches a user may act within besides their default branch."""
    __tablename__ = "user_branch"

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id", ondelete="CASCADE"), primary_key=True)


class SessionToken(db.Model):
    """
    Bearer session tokens.

    SECURITY: Only the SHA-256 hash of the token is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_expires", "user_id", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))


class PermissionScope(db.Model):
    """
    Registry of permission scopes.

    scope_type is MODULE or SCREEN; scope_key is dotted
    (e.g. "master_data.basic_info.uom_conversions"). A SCREEN inherits from
    the MODULE named by the first segment of its key.
    """
    __tablename__ = "permission_scope_registry"
    __table_args__ = (
        db.UniqueConstraint("scope_type", "scope_key", name="uq_permission_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope_type = db.Column(db.String(16), nullable=False)
    scope_key = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope_type": self.scope_type,
            "scope_key": self.scope_key,
            "description": self.description,
        }


PERMISSION_FLAGS = (
    "can_view",
    "can_navigate",
    "can_create",
    "can_edit",
    "can_delete",
    "can_hard_delete",
    "can_print",
    "can_approve",
)


class RolePermission(db.Model):
    """Role-level rights on a scope. Every flag is NOT NULL, default false."""
    __tablename__ = "role_permissions"

    role_id = db.Column(db.Integer, db.ForeignKey("role_templates.id", ondelete="CASCADE"), primary_key=True)
    scope_id = db.Column(db.Integer, db.ForeignKey("permission_scope_registry.id"), primary_key=True)

    can_view = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    can_navigate = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    can_create = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    can_edit = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    can_delete = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    can_hard_delete = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    can_print = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())
    can_approve = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.false())

    role = db.relationship("RoleTemplate", backref=db.backref("permissions", lazy=True))
    scope = db.relationship("PermissionScope")


class UserPermissionOverride(db.Model):
    """
    Per-user exceptions to role rights.

    NULL => inherit from role_permissions
    TRUE/FALSE => explicit override for that user on that scope
    """
    __tablename__ = "user_permissions_override"

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    scope_id = db.Column(db.Integer, db.ForeignKey("permission_scope_registry.id"), primary_key=True)

    can_view = db.Column(db.Boolean, nullable=True)
    can_navigate = db.Column(db.Boolean, nullable=True)
    can_create = db.Column(db.Boolean, nullable=True)
    can_edit = db.Column(db.Boolean, nullable=True)
    can_delete = db.Column(db.Boolean, nullable=True)
    can_hard_delete = db.Column(db.Boolean, nullable=True)
    can_print = db.Column(db.Boolean, nullable=True)
    can_approve = db.Column(db.Boolean, nullable=True)

    user = db.relationship("User", backref=db.backref("permission_overrides", lazy=True))
    scope = db.relationship("PermissionScope")
