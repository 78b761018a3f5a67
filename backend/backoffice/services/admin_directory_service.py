# Overview: Service-layer lookup of active administrator email addresses.

from __future__ import annotations

import re

from sqlalchemy import func

from ..extensions import db
from ..models import RoleTemplate, User

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PLACEHOLDER_DOMAINS = ("@example.com", "@example.org", "@example.net")


def is_deliverable_email(value: str | None) -> bool:
    """RFC-shaped and not a documentation placeholder domain."""
    email = (value or "").strip()
    if not email or not EMAIL_PATTERN.match(email):
        return False
    return not email.lower().endswith(PLACEHOLDER_DOMAINS)


def active_admin_emails() -> list[str]:
    """
    Emails of users whose primary role is "admin" and whose status is
    "active" (both compared trimmed and case-insensitively).

    Invalid and placeholder addresses are dropped; duplicates (case-insensitive)
    are collapsed keeping the first spelling.
    """
    rows = (
        db.session.query(User.email)
        .join(RoleTemplate, RoleTemplate.id == User.primary_role_id)
        .filter(func.lower(func.trim(RoleTemplate.name)) == "admin")
        .filter(func.lower(func.trim(User.status)) == "active")
        .filter(User.email.isnot(None))
        .order_by(User.id)
        .all()
    )

    emails: list[str] = []
    seen: set[str] = set()
    for (email,) in rows:
        email = (email or "").strip()
        if not is_deliverable_email(email) or email.lower() in seen:
            continue
        seen.add(email.lower())
        emails.append(email)
    return emails
