"""
Approval notification tests.

SMTP is replaced with an in-memory fake; nothing leaves the process.

Verifies:
- Subject and bodies carry the request fields, HTML-escaped
- Delivery goes to every active admin
- Missing configuration or recipients means no delivery
- Transport failures are logged and never raised
"""

import logging

import pytest

from backoffice.services import approval_notification_service, email_service
from backoffice.services.approval_notification_service import ApprovalNotice, compose, notify_pending_approval_admins


class FakeSMTP:
    """Records every conversation; `fail_with` makes sendmail raise."""

    sent = []
    fail_with = None

    def __init__(self, host, port):
        self.host = host
        self.port = port
        self.logged_in = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        self.logged_in = (user, password)

    def sendmail(self, sender, to, message):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        FakeSMTP.sent.append({"host": self.host, "port": self.port, "from": sender, "to": list(to),
                              "message": message, "login": self.logged_in})


@pytest.fixture
def fake_smtp(app, monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setitem(app.config, "GMAIL_USER", "erp.bot@gmail.com")
    monkeypatch.setitem(app.config, "GMAIL_APP_PASSWORD", "app-password")
    return FakeSMTP


def make_notice(**overrides):
    values = dict(
        approval_request_id=42,
        request_type="UPDATE",
        entity_type="UOM_CONVERSION",
        entity_id="NEW",
        summary="Create conversion PCS -> DOZ",
        old_value=None,
        new_value={"from_uom_id": 1, "to_uom_id": 2, "factor": 12},
        requested_by_name="clerk",
        branch_id=1,
    )
    values.update(overrides)
    return ApprovalNotice(**values)


class TestCompose:

    def test_subject_names_the_entity_type(self):
        subject, _text, _html = compose(make_notice(), lambda key: key)
        assert subject == "approval_pending_subject: UOM_CONVERSION"

    def test_text_lists_fields_and_pretty_json(self):
        _subject, text, _html = compose(make_notice(), lambda key: key)

        assert "approval_request_id: 42" in text
        assert "entity_id: NEW" in text
        assert "requested_by: clerk" in text
        assert '"factor": 12' in text
        assert 'new_value: {\n  "from_uom_id": 1' in text

    def test_missing_values_render_as_dash(self):
        _subject, text, _html = compose(make_notice(summary=None, requested_by_name=""), lambda key: key)

        assert "summary: -" in text
        assert "requested_by: -" in text
        assert "old_value: {}" in text

    def test_html_is_escaped(self):
        notice = make_notice(summary="<script>alert(1)</script>", new_value={"name": "A & B"})
        _subject, _text, body = compose(notice, lambda key: key)

        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert "A &amp; B" in body

    def test_default_translator_is_bilingual(self):
        subject, _text, _html = compose(make_notice())
        assert subject.startswith("ERP approval pending / ")


class TestNotifyPendingApprovalAdmins:

    def test_sends_to_active_admins(self, admin_user, fake_smtp):
        assert notify_pending_approval_admins(make_notice()) is True

        assert len(fake_smtp.sent) == 1
        sent = fake_smtp.sent[0]
        assert sent["to"] == ["admin@erp.pk"]
        assert sent["from"] == "erp.bot@gmail.com"
        assert sent["login"] == ("erp.bot@gmail.com", "app-password")
        assert (sent["host"], sent["port"]) == ("smtp.gmail.com", 587)

    def test_no_recipients(self, clerk_user, fake_smtp):
        assert notify_pending_approval_admins(make_notice()) is False
        assert fake_smtp.sent == []

    def test_not_configured(self, app, admin_user, fake_smtp, monkeypatch):
        monkeypatch.setitem(app.config, "GMAIL_APP_PASSWORD", None)

        assert notify_pending_approval_admins(make_notice()) is False
        assert fake_smtp.sent == []

    def test_transport_failure_is_logged_not_raised(self, admin_user, fake_smtp, caplog):
        fake_smtp.fail_with = OSError("connection refused")

        with caplog.at_level(logging.ERROR, logger=approval_notification_service.__name__):
            assert notify_pending_approval_admins(make_notice()) is False

        assert "approval_request_id=42" in caplog.text
        assert "entity_type=UOM_CONVERSION" in caplog.text
        assert "connection refused" in caplog.text


class TestSendEmail:

    def test_disabled_without_credentials(self, fake_smtp):
        assert email_service.send_email({}, ["a@erp.pk"], "s", "t") is False
        assert fake_smtp.sent == []

    def test_multipart_message(self, fake_smtp):
        config = {"GMAIL_USER": "bot@gmail.com", "GMAIL_APP_PASSWORD": "pw"}
        assert email_service.send_email(config, ["a@erp.pk", "b@erp.pk"], "Subject", "plain", "<p>html</p>") is True

        message = fake_smtp.sent[0]["message"]
        assert "multipart/alternative" in message
        assert "To: a@erp.pk, b@erp.pk" in message
