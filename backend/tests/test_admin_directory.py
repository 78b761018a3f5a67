"""
Admin directory tests.

Verifies:
- Only active users whose primary role is admin are returned
- Placeholder and malformed addresses are dropped
- Duplicates collapse case-insensitively, keeping the first spelling
"""

import pytest

from backoffice.services.admin_directory_service import active_admin_emails, is_deliverable_email
from backoffice.services.auth_service import create_user

from conftest import PASSWORD


class TestIsDeliverableEmail:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("owner@erp.pk", True),
            ("  owner@erp.pk  ", True),
            ("owner@example.com", False),
            ("OWNER@EXAMPLE.ORG", False),
            ("owner@example.net", False),
            ("owner@erp", False),
            ("owner erp@erp.pk", False),
            ("", False),
            (None, False),
        ],
    )
    def test_deliverable(self, value, expected):
        assert is_deliverable_email(value) is expected


class TestActiveAdminEmails:

    def test_returns_active_admins_only(self, admin_user, clerk_user, branch):
        create_user("old_admin", PASSWORD, "admin", email="old@erp.pk",
                    branch_id=branch.id, status="Inactive", rounds=4)

        assert active_admin_emails() == ["admin@erp.pk"]

    def test_status_is_trimmed_and_case_insensitive(self, admin_user, branch):
        create_user("second", PASSWORD, "admin", email="second@erp.pk",
                    branch_id=branch.id, status=" ACTIVE ", rounds=4)

        assert active_admin_emails() == ["admin@erp.pk", "second@erp.pk"]

    def test_invalid_and_placeholder_addresses_are_dropped(self, admin_user, branch):
        create_user("demo", PASSWORD, "admin", email="demo@example.com", branch_id=branch.id, rounds=4)
        create_user("broken", PASSWORD, "admin", email="not-an-email", branch_id=branch.id, rounds=4)
        create_user("blank", PASSWORD, "admin", email=None, branch_id=branch.id, rounds=4)

        assert active_admin_emails() == ["admin@erp.pk"]

    def test_duplicates_keep_first_spelling(self, admin_user, branch):
        create_user("shadow", PASSWORD, "admin", email="ADMIN@erp.pk", branch_id=branch.id, rounds=4)

        assert active_admin_emails() == ["admin@erp.pk"]

    def test_no_admins(self, clerk_user):
        assert active_admin_emails() == []
