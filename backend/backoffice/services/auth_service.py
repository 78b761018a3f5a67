# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with upper, lower and digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import Branch, RoleTemplate, User, UserBranch
from backoffice.time_utils import utcnow


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    if len(password or "") < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing. Tests pass a lower
    cost factor.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash verifies as False.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def get_or_create_role(name: str, description: str | None = None) -> RoleTemplate:
    role = db.session.query(RoleTemplate).filter(
        db.func.lower(RoleTemplate.name) == name.strip().lower()
    ).first()
    if role:
        return role
    role = RoleTemplate(name=name.strip(), description=description)
    db.session.add(role)
    db.session.flush()
    return role


def create_user(
    username: str,
    password: str,
    role_name: str,
    email: str | None = None,
    branch_id: int | None = None,
    status: str = "Active",
    rounds: int = 12,
) -> User:
    """
    Create a user carrying `role_name` as primary role.

    Raises:
        ValueError: If the username is taken or the branch is unknown
        PasswordValidationError: If password doesn't meet requirements
    """
    username = (username or "").strip()
    if not username:
        raise ValueError("Username is required")

    if db.session.query(User).filter(db.func.lower(User.username) == username.lower()).first():
        raise ValueError("Username already exists")

    if branch_id is not None and not db.session.get(Branch, branch_id):
        raise ValueError("Branch not found")

    role = get_or_create_role(role_name)

    user = User(
        username=username,
        email=(email or "").strip() or None,
        password_hash=hash_password(password, rounds=rounds),
        primary_role_id=role.id,
        branch_id=branch_id,
        status=status,
    )
    db.session.add(user)
    db.session.flush()

    if branch_id is not None:
        db.session.add(UserBranch(user_id=user.id, branch_id=branch_id))

    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username)
    ).first()

    if not user or not user.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def user_can_act_in_branch(user: User, branch_id: int) -> bool:
    """Default branch, any UserBranch mapping, or any branch for admins."""
    if user.is_admin or user.branch_id == branch_id:
        return True
    return db.session.query(UserBranch).filter_by(user_id=user.id, branch_id=branch_id).first() is not None
