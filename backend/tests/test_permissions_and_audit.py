"""
Permission, activity-log and schema constraint tests.

Verifies:
- SCREEN rights first, then the owning MODULE; admins bypass
- can_navigate needs can_view; edit/delete/approve need can_navigate
- User overrides win over role rows, NULL inherits
- Audit context is sanitized before it is stored
- Friendly messages never leak raw database text
- Production costing tables enforce their uniqueness rules
"""

import pytest
from sqlalchemy.exc import IntegrityError

from backoffice.errors import friendly_error_message
from backoffice.models import Department, LabourRateRule, Labour, Sku, Variant
from backoffice.services import activity_log_service, permission_service
from backoffice.services.activity_log_service import MAX_STRING, sanitize_for_audit
from backoffice.services.auth_service import create_user
from backoffice.validation import LockedError

from conftest import PASSWORD


SKUS_SCOPE = "master_data.products.skus"


class TestHasPermission:

    def test_admin_bypass(self, admin_user):
        assert permission_service.has_permission(admin_user, "anything.at.all", "approve")

    def test_module_row_covers_screens(self, clerk_user):
        assert permission_service.has_permission(clerk_user, SKUS_SCOPE, "create")
        assert not permission_service.has_permission(clerk_user, "administration.approvals", "view")

    def test_screen_row_is_checked_first(self, clerk_user, db_session):
        permission_service.grant_role_permission(
            clerk_user.primary_role_id, "SCREEN", SKUS_SCOPE, can_view=True, can_navigate=True, can_approve=True,
        )
        db_session.commit()

        assert permission_service.has_permission(clerk_user, SKUS_SCOPE, "approve")
        assert not permission_service.has_permission(clerk_user, "master_data.basic_info.units", "approve")

    def test_navigate_gates_edit(self, branch, db_session):
        user = create_user("gated", PASSWORD, "gated", branch_id=branch.id, rounds=4)
        permission_service.grant_role_permission(
            user.primary_role_id, "SCREEN", SKUS_SCOPE, can_view=False, can_navigate=True, can_edit=True,
        )
        db_session.commit()

        assert not permission_service.has_permission(user, SKUS_SCOPE, "navigate")
        assert not permission_service.has_permission(user, SKUS_SCOPE, "edit")

    def test_override_wins_and_null_inherits(self, clerk_user, db_session):
        permission_service.set_user_override(clerk_user.id, "MODULE", "master_data", can_delete=False, can_edit=None)
        db_session.commit()

        assert not permission_service.has_permission(clerk_user, SKUS_SCOPE, "delete")
        assert permission_service.has_permission(clerk_user, SKUS_SCOPE, "edit")

    def test_unknown_action_is_denied(self, clerk_user):
        assert not permission_service.has_permission(clerk_user, SKUS_SCOPE, "explode")

    def test_anonymous_is_denied(self):
        assert not permission_service.has_permission(None, SKUS_SCOPE, "view")

    def test_viewer_cannot_open_admin_screens(self, client, viewer_headers):
        assert client.get("/administration/approvals", headers=viewer_headers).status_code == 403


class TestActivityLog:

    def test_secrets_are_dropped(self):
        cleaned = sanitize_for_audit({"_csrf": "x", "Password": "p", "nested": {"token": "t", "keep": 1}})
        assert cleaned == {"nested": {"keep": 1}}

    def test_long_strings_and_lists_are_trimmed(self):
        cleaned = sanitize_for_audit({"text": "a" * 500, "items": list(range(50))})
        assert cleaned["text"] == "a" * MAX_STRING + "..."
        assert len(cleaned["items"]) == 40

    def test_deep_nesting_is_truncated(self):
        cleaned = sanitize_for_audit({"a": {"b": {"c": {"d": {"e": {"f": 1}}}}}})
        assert cleaned["a"]["b"]["c"]["d"] == {"e": "[truncated]"}

    def test_unknown_action_is_rejected(self, db_session):
        with pytest.raises(ValueError):
            activity_log_service.append_activity(entity_type="UOM", action="EXPLODE")

    def test_entity_id_is_text(self, db_session):
        row = activity_log_service.append_activity(entity_type="UOM", entity_id=12, action="create")
        assert (row.entity_id, row.action) == ("12", "CREATE")


class TestFriendlyErrors:

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("FOREIGN KEY constraint failed", "This record is linked to other data and cannot be deleted."),
            ("UNIQUE constraint failed: uom.code", "A record with the same details already exists."),
            ("NOT NULL constraint failed: uom.name", "Required fields are missing."),
            ("something odd", "Unable to save. Please review the values and try again."),
        ],
    )
    def test_integrity_errors(self, app, message, expected):
        exc = IntegrityError("INSERT", {}, Exception(message))
        with app.test_request_context("/"):
            assert friendly_error_message(exc) == expected

    def test_domain_errors_use_catalog(self, app):
        with app.test_request_context("/", headers={"Cookie": "lang=ur"}):
            message = friendly_error_message(LockedError("error_unit_code_locked"))
        assert message.startswith("اکائی")

    def test_raw_fk_string_is_masked(self, app):
        with app.test_request_context("/"):
            message = friendly_error_message('update violates foreign key constraint "fk_items_uom"')
        assert "fk_items_uom" not in message


class TestProductionSchema:

    @pytest.fixture
    def costing(self, shoe, db_session):
        dept = Department(id=1, name="Stitching", is_production=True)
        labour = Labour(id=1, code="L1", name="Aslam", dept_id=1)
        variant = Variant(id=1, item_id=shoe.id, size_id=3, grade_id=1, sale_rate=0)
        db_session.add_all([dept, labour, variant])
        db_session.flush()
        db_session.add(Sku(id=1, variant_id=1, sku_code="SHOE-40-A"))
        db_session.commit()

    def test_one_labour_rate_per_labour_dept_sku(self, costing, db_session):
        db_session.add(LabourRateRule(labour_id=1, dept_id=1, sku_id=1, rate_value=10))
        db_session.commit()

        db_session.add(LabourRateRule(labour_id=1, dept_id=1, sku_id=1, rate_value=12))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_all_labour_rules_are_not_limited(self, costing, db_session):
        db_session.add_all([
            LabourRateRule(applies_to_all_labours=True, labour_id=1, dept_id=1, sku_id=1, rate_value=10),
            LabourRateRule(applies_to_all_labours=True, labour_id=1, dept_id=1, sku_id=1, rate_value=11),
        ])
        db_session.commit()

        assert db_session.query(LabourRateRule).count() == 2

    def test_article_type_check(self, costing, db_session):
        db_session.add(LabourRateRule(dept_id=1, apply_on="FLAT", article_type="RM", rate_value=5))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()
