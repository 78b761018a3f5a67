"""
Approval pipeline tests.

Verifies:
- decide_approval: admin bypass, permission reroute, policy
- Both queueing surfaces write one PENDING row plus a SUBMIT log entry
- Queued screen writes leave the domain tables untouched
- PENDING -> APPROVED replays the stored change; PENDING -> REJECTED discards it
- Decided requests cannot be decided again
"""

import json
from urllib.parse import unquote

import pytest

from backoffice.models import ActivityLog, ApprovalPolicy, ApprovalRequest, UomConversion
from backoffice.services import approval_service, uom_conversion_service
from backoffice.services.approval_service import (
    REASON_ADMIN_BYPASS,
    REASON_NOT_REQUIRED,
    REASON_PERMISSION_REROUTE,
    REASON_POLICY,
    ApprovalStateError,
    decide_approval,
)
from backoffice.validation import ConflictError, ValidationError


CONVERSIONS_PATH = "/master-data/basic-info/uom-conversions"
CONVERSIONS_SCOPE = "master_data.basic_info.uom_conversions"


def cookie_payload(client, name, path="/"):
    cookie = client.get_cookie(name, path=path)
    return json.loads(unquote(cookie.value)) if cookie is not None else None


def queue_conversion(client, headers, factor="12"):
    return client.post(
        CONVERSIONS_PATH,
        data={"from_uom_id": "1", "to_uom_id": "2", "factor": factor, "_csrf": "VALID"},
        headers=headers,
    )


class TestDecideApproval:

    def test_admin_bypasses_everything(self, admin_user):
        decision = decide_approval(True, admin_user, CONVERSIONS_SCOPE, "create")
        assert decision.required is False
        assert decision.reason == REASON_ADMIN_BYPASS

    def test_missing_right_reroutes(self, viewer_user):
        decision = decide_approval(False, viewer_user, CONVERSIONS_SCOPE, "create")
        assert decision.required is True
        assert decision.reason == REASON_PERMISSION_REROUTE

    def test_policy_decides_for_permitted_user(self, clerk_user):
        assert decide_approval(True, clerk_user, CONVERSIONS_SCOPE, "create").reason == REASON_POLICY
        assert decide_approval(None, clerk_user, CONVERSIONS_SCOPE, "create").reason == REASON_NOT_REQUIRED

    def test_pure_with_supplied_permissions(self, clerk_user):
        effective = {f"SCREEN:{CONVERSIONS_SCOPE}": {"can_view": True, "can_create": False}}
        decision = decide_approval(False, clerk_user, CONVERSIONS_SCOPE, "create", effective=effective)
        assert decision.reason == REASON_PERMISSION_REROUTE


class TestSubmit:

    def test_missing_fields_write_nothing(self, clerk_user, branch, db_session):
        with pytest.raises(ValidationError) as exc_info:
            approval_service.submit(
                branch_id=branch.id, requested_by=clerk_user, request_type="",
                entity_type="UOM", entity_id=1, source="test",
            )

        assert str(exc_info.value) == "approval_missing_fields"
        assert db_session.query(ApprovalRequest).count() == 0
        assert db_session.query(ActivityLog).count() == 0

    def test_submit_logs_and_stringifies_entity_id(self, clerk_user, branch, db_session):
        request_id = approval_service.submit(
            branch_id=branch.id, requested_by=clerk_user, request_type="MASTER_DATA_CHANGE",
            entity_type="UOM", entity_id=5, new_value={"name": "Pairs"}, source="test", reason="unit test",
        )

        row = db_session.get(ApprovalRequest, request_id)
        assert row.status == "PENDING"
        assert row.entity_id == "5"

        log = db_session.query(ActivityLog).filter_by(action="SUBMIT").one()
        assert log.entity_id == "5"
        assert log.context_json["approval_request_id"] == request_id
        assert log.context_json["source"] == "test"
        assert log.context_json["reason"] == "unit test"

    def test_identical_submissions_are_not_deduplicated(self, clerk_user, branch, db_session):
        for _ in range(2):
            approval_service.submit(
                branch_id=branch.id, requested_by=clerk_user, request_type="MASTER_DATA_CHANGE",
                entity_type="UOM", entity_id="NEW", new_value={"code": "PR"}, source="test",
            )
        assert db_session.query(ApprovalRequest).filter_by(status="PENDING").count() == 2


class TestApiSubmission:

    def test_block_answers_202(self, client, clerk_headers, db_session):
        resp = client.post("/api/approvals", json={
            "request_type": "PRICE_CHANGE",
            "entity_type": "SKU",
            "entity_id": 77,
            "summary": "Raise sale rate",
            "new_value": {"sale_rate": 1500},
            "block": True,
        }, headers=clerk_headers)

        assert resp.status_code == 202
        assert resp.json["status"] == "PENDING"
        row = db_session.get(ApprovalRequest, resp.json["approval_request_id"])
        assert row.entity_id == "77"
        assert row.new_value == {"sale_rate": 1500}

    def test_non_blocking_continues(self, client, clerk_headers, db_session):
        resp = client.post("/api/approvals", json={
            "request_type": "PRICE_CHANGE", "entity_type": "SKU", "entity_id": "77",
        }, headers=clerk_headers)

        assert resp.status_code == 200
        assert resp.json["approval_request_id"] is not None
        assert cookie_payload(client, "ui_notice")["message"]

    def test_missing_fields_is_400(self, client, clerk_headers, db_session):
        resp = client.post("/api/approvals", json={"entity_type": "SKU"}, headers=clerk_headers)

        assert resp.status_code == 400
        assert db_session.query(ApprovalRequest).count() == 0


class TestScreenApproval:

    def test_policy_queues_conversion_create(self, client, clerk_headers, uoms, db_session):
        approval_service.set_policy(CONVERSIONS_SCOPE, "create", True)

        resp = queue_conversion(client, clerk_headers)

        assert resp.status_code == 302
        assert resp.headers["Location"].endswith(CONVERSIONS_PATH)

        row = db_session.query(ApprovalRequest).one()
        assert row.status == "PENDING"
        assert row.request_type == "MASTER_DATA_CHANGE"
        assert row.entity_type == "UOM_CONVERSION"
        assert row.entity_id == "NEW"
        assert row.new_value == {"from_uom_id": 1, "to_uom_id": 2, "factor": 12}
        assert db_session.query(UomConversion).count() == 0

        log = db_session.query(ActivityLog).filter_by(action="SUBMIT").one()
        assert log.context_json["source"] == "screen-approval"
        assert log.context_json["reason"] == REASON_POLICY

        notice = cookie_payload(client, "ui_notice")
        assert notice["sticky"] is True
        assert notice["autoClose"] is False

    def test_without_policy_writes_inline(self, client, clerk_headers, uoms, db_session):
        resp = queue_conversion(client, clerk_headers)

        assert resp.status_code == 302
        assert db_session.query(ApprovalRequest).count() == 0
        conversion = db_session.query(UomConversion).one()
        assert float(conversion.factor) == 12.0
        assert db_session.query(ActivityLog).filter_by(action="CREATE").count() == 1

    def test_missing_right_reroutes_to_queue(self, client, viewer_headers, uoms, db_session):
        resp = queue_conversion(client, viewer_headers)

        assert resp.status_code == 302
        assert db_session.query(UomConversion).count() == 0
        log = db_session.query(ActivityLog).filter_by(action="SUBMIT").one()
        assert log.context_json["reason"] == REASON_PERMISSION_REROUTE

    def test_admin_writes_inline_despite_policy(self, client, admin_headers, uoms, db_session):
        approval_service.set_policy(CONVERSIONS_SCOPE, "create", True)

        queue_conversion(client, admin_headers)

        assert db_session.query(ApprovalRequest).count() == 0
        assert db_session.query(UomConversion).count() == 1

    def test_invalid_payload_is_rejected_before_queueing(self, client, clerk_headers, uoms, db_session):
        approval_service.set_policy(CONVERSIONS_SCOPE, "create", True)

        resp = queue_conversion(client, clerk_headers, factor="0")

        assert resp.status_code == 302
        assert db_session.query(ApprovalRequest).count() == 0
        flash = cookie_payload(client, "basic_info_flash", path=CONVERSIONS_PATH)
        assert flash["modalMode"] == "create"
        assert flash["error"] == "Factor must be greater than zero."


class TestDecisions:

    @pytest.fixture
    def queued_conversion(self, client, clerk_headers, uoms, db_session):
        approval_service.set_policy(CONVERSIONS_SCOPE, "create", True)
        queue_conversion(client, clerk_headers)
        return db_session.query(ApprovalRequest).one()

    def test_approve_applies_stored_change(self, client, admin_headers, queued_conversion, db_session):
        resp = client.post(
            f"/administration/approvals/{queued_conversion.id}/approve",
            data={"notes": "ok", "_csrf": "VALID"},
            headers=admin_headers,
        )

        assert resp.status_code == 302
        db_session.refresh(queued_conversion)
        assert queued_conversion.status == "APPROVED"
        assert queued_conversion.decision_notes == "ok"
        assert queued_conversion.decided_at is not None

        conversion = db_session.query(UomConversion).one()
        assert (conversion.from_uom_id, conversion.to_uom_id) == (1, 2)
        assert db_session.query(ActivityLog).filter_by(action="APPROVE").count() == 1

    def test_reject_discards_change(self, client, admin_headers, queued_conversion, db_session):
        resp = client.post(
            f"/administration/approvals/{queued_conversion.id}/reject",
            data={"_csrf": "VALID"},
            headers=admin_headers,
        )

        assert resp.status_code == 302
        db_session.refresh(queued_conversion)
        assert queued_conversion.status == "REJECTED"
        assert db_session.query(UomConversion).count() == 0

    def test_decided_request_is_terminal(self, admin_user, queued_conversion):
        approval_service.reject_request(queued_conversion.id, admin_user)

        with pytest.raises(ApprovalStateError):
            approval_service.approve_request(queued_conversion.id, admin_user)
        with pytest.raises(ApprovalStateError):
            approval_service.reject_request(queued_conversion.id, admin_user)

    def test_deciding_twice_via_route_sets_ui_error(self, client, admin_headers, queued_conversion):
        path = f"/administration/approvals/{queued_conversion.id}/approve"
        client.post(path, data={"_csrf": "VALID"}, headers=admin_headers)
        resp = client.post(path, data={"_csrf": "VALID"}, headers=admin_headers)

        assert resp.status_code == 302
        assert cookie_payload(client, "ui_error")["message"] == "Only pending requests can be decided."

    def test_replay_uses_current_row(self, admin_user, queued_conversion, db_session):
        # A conversion for the same pair appeared after the request was queued
        uom_conversion_service.perform_create({"from_uom_id": 1, "to_uom_id": 2, "factor": 10}, admin_user.id)
        db_session.commit()

        with pytest.raises(ConflictError):
            approval_service.approve_request(queued_conversion.id, admin_user)

        db_session.refresh(queued_conversion)
        assert queued_conversion.status == "PENDING"

    def test_non_admin_cannot_decide(self, client, clerk_headers, queued_conversion):
        resp = client.post(
            f"/administration/approvals/{queued_conversion.id}/approve",
            data={"_csrf": "VALID"},
            headers=clerk_headers,
        )
        assert resp.status_code == 403

    def test_list_shows_pending(self, client, admin_headers, queued_conversion):
        resp = client.get("/administration/approvals", headers=admin_headers)

        assert resp.status_code == 200
        assert [item["id"] for item in resp.json["items"]] == [queued_conversion.id]
        assert resp.json["items"][0]["requested_by_name"] == "clerk"

    def test_detail_includes_activity(self, client, admin_headers, queued_conversion):
        resp = client.get(f"/administration/approvals/{queued_conversion.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["status"] == "PENDING"
        assert [entry["action"] for entry in resp.json["activity"]] == ["SUBMIT"]
        assert resp.json["activity"][0]["context"]["source"] == "screen-approval"


class TestPolicySettings:

    def test_settings_replace_screen_policies(self, client, admin_headers, db_session):
        approval_service.set_policy("master_data.basic_info.units", "delete", True)

        resp = client.post(
            "/administration/approvals/settings",
            data={
                "policy_keys": [
                    "SCREEN:master_data.products.skus:create",
                    "SCREEN:master_data.basic_info.units:edit",
                    "not-a-key",
                ],
                "_csrf": "VALID",
            },
            headers=admin_headers,
        )

        assert resp.status_code == 302
        keys = sorted(p.key for p in db_session.query(ApprovalPolicy).all())
        assert keys == [
            "SCREEN:master_data.basic_info.units:edit",
            "SCREEN:master_data.products.skus:create",
        ]

        settings = client.get("/administration/approvals/settings", headers=admin_headers)
        assert sorted(settings.json["checked"]) == keys

    def test_parse_policy_key(self):
        assert approval_service.parse_policy_key("SCREEN:a.b:create") == ("SCREEN", "a.b", "create")
        assert approval_service.parse_policy_key("SCREEN::create") is None
        assert approval_service.parse_policy_key("a:b") is None
