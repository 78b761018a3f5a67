"""
UI feedback cookie and CSRF tests.

Verifies:
- Payloads are URL-encoded JSON and read back intact
- Reads are destructive; malformed cookies read as None
- State-changing requests need the double-submit CSRF token
- Login is exempt; request ids are echoed
"""

from backoffice.services.auth_service import create_user
from backoffice.ui_cookies import (
    UI_NOTICE_COOKIE,
    consume_flash,
    consume_ui_error,
    consume_ui_notice,
    decode_payload,
    encode_payload,
)

from conftest import PASSWORD, auth_headers


SIZES_PATH = "/master-data/basic-info/sizes"


class TestPayloadCodec:

    def test_encoded_value_has_no_cookie_separators(self):
        raw = encode_payload({"message": "Saved; ok, done", "autoClose": True})
        assert ";" not in raw and "," not in raw and " " not in raw
        assert decode_payload(raw) == {"message": "Saved; ok, done", "autoClose": True}

    def test_urdu_text_survives(self):
        assert decode_payload(encode_payload({"message": "محفوظ"})) == {"message": "محفوظ"}

    def test_malformed_is_none(self):
        assert decode_payload("%7Bnot-json") is None
        assert decode_payload("") is None
        assert decode_payload(None) is None


class TestConsume:

    def test_reads_payload(self, app):
        cookie = f"{UI_NOTICE_COOKIE}={encode_payload({'message': 'hi', 'autoClose': True})}"
        with app.test_request_context("/", headers={"Cookie": cookie}):
            assert consume_ui_notice() == {"message": "hi", "autoClose": True}

    def test_absent_cookies_are_none(self, app):
        with app.test_request_context("/"):
            assert consume_ui_notice() is None
            assert consume_ui_error() is None
            assert consume_flash(SIZES_PATH) is None

    def test_malformed_cookie_reads_none_and_is_cleared(self, client, admin_headers):
        client.set_cookie(UI_NOTICE_COOKIE, "%7Bbroken")

        resp = client.get(SIZES_PATH, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["notice"] is None
        assert client.get_cookie(UI_NOTICE_COOKIE) is None

    def test_error_cookie_is_single_use(self, client, admin_headers):
        client.set_cookie("ui_error", encode_payload({"message": "boom"}))

        first = client.get(SIZES_PATH, headers=admin_headers).json
        second = client.get(SIZES_PATH, headers=admin_headers).json

        assert first["error"] == {"message": "boom"}
        assert second["error"] is None


class TestCsrf:

    def test_missing_token_is_403(self, app, admin_user):
        client = app.test_client()

        headers = {k: v for k, v in auth_headers(admin_user).items() if k != "X-CSRF-Token"}
        resp = client.post(SIZES_PATH, data={"name": "42"}, headers=headers)

        assert resp.status_code == 403
        assert resp.json == {"error": "Invalid CSRF token"}

    def test_mismatched_form_token_is_403(self, client, admin_headers):
        headers = {k: v for k, v in admin_headers.items() if k != "X-CSRF-Token"}
        resp = client.post(SIZES_PATH, data={"name": "42", "_csrf": "WRONG"}, headers=headers)

        assert resp.status_code == 403

    def test_form_field_is_accepted(self, client, admin_headers):
        headers = {k: v for k, v in admin_headers.items() if k != "X-CSRF-Token"}
        resp = client.post(SIZES_PATH, data={"name": "42", "_csrf": "VALID"}, headers=headers)

        assert resp.status_code == 302

    def test_safe_methods_issue_cookie(self, app, db_session):
        client = app.test_client()
        resp = client.get("/auth/me")

        assert resp.status_code == 401
        assert client.get_cookie("csrf_token") is not None

    def test_login_is_exempt(self, app, branch):
        create_user("owner", PASSWORD, "admin", email="owner@erp.pk", branch_id=branch.id, rounds=4)
        client = app.test_client()

        resp = client.post("/auth/login", json={"username": "owner", "password": PASSWORD})

        assert resp.status_code == 200
        assert resp.json["token"]

    def test_request_id_is_echoed(self, client, db_session):
        resp = client.get("/auth/me", headers={"X-Request-Id": "req-123"})
        assert resp.headers["X-Request-Id"] == "req-123"


class TestAuth:

    def test_wrong_password(self, app, admin_user):
        resp = app.test_client().post("/auth/login", json={"username": "admin", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, admin_headers):
        assert client.post("/auth/logout", headers=admin_headers).status_code == 200
        assert client.get("/auth/me", headers=admin_headers).status_code == 401

    def test_me_reports_branch(self, client, admin_headers, branch):
        resp = client.get("/auth/me", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["branch_id"] == branch.id
        assert resp.json["user"]["username"] == "admin"
