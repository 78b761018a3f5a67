# Overview: Service-layer dispatcher for "approval pending" emails to administrators.

"""
Approval Notification Dispatcher

FIRE-AND-FORGET: the approval pipeline hands a notice over after its commit
and returns immediately. Recipients are resolved and the message composed
on the request thread (database access stays on the request's session);
only the SMTP conversation runs on a small worker pool.

FAILURES: never propagated. A transport failure is logged with
approval_request_id, entity_type and the error message.

NOTIFICATIONS_ASYNC=False runs delivery inline (tests, CLI).
"""

from __future__ import annotations

import atexit
import html
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from ..i18n import Translator, bilingual
from . import admin_directory_service, email_service

logger = logging.getLogger(__name__)

EMAIL_CONFIG_KEYS = ("GMAIL_USER", "GMAIL_APP_PASSWORD", "SMTP_HOST", "SMTP_PORT")

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


@dataclass
class ApprovalNotice:
    approval_request_id: int
    request_type: str | None
    entity_type: str | None
    entity_id: str | None
    summary: str | None = None
    old_value: Any = None
    new_value: Any = None
    requested_by_name: str | None = None
    branch_id: int | None = None
    extra: dict = field(default_factory=dict)


def pretty_json(value: Any) -> str:
    try:
        return json.dumps(value or {}, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "{}"


def _or_dash(value: Any) -> str:
    if value is None or value == "":
        return "-"
    return str(value)


def compose(notice: ApprovalNotice, t: Translator = bilingual) -> tuple[str, str, str]:
    """
    Build (subject, text, html).

    Every interpolated value is HTML-escaped in the HTML part; old/new values
    are pretty-printed JSON with a 2-space indent in both parts.
    """
    subject = f"{t('approval_pending_subject')}: {notice.entity_type or 'UNKNOWN'}"

    rows = [
        (t("approval_request_id"), notice.approval_request_id),
        (t("request_type"), notice.request_type),
        (t("entity_type"), notice.entity_type),
        (t("entity_id"), notice.entity_id),
        (t("requested_by"), notice.requested_by_name),
        (t("branch"), notice.branch_id),
        (t("summary"), notice.summary),
    ]
    old_json = pretty_json(notice.old_value)
    new_json = pretty_json(notice.new_value)
    title = t("approval_pending_details")

    text_lines = [f"{t('approval_pending_intro')}", "", f"{title}:"]
    text_lines += [f"{label}: {_or_dash(value)}" for label, value in rows]
    text_lines += [f"{t('old_value')}: {old_json}", f"{t('new_value')}: {new_json}"]
    text = "\n".join(text_lines)

    items = "\n".join(
        f"      <li><strong>{html.escape(label)}:</strong> {html.escape(_or_dash(value))}</li>"
        for label, value in rows
    )
    body = (
        f"<p>{html.escape(t('approval_pending_intro'))}</p>\n"
        f"<p><strong>{html.escape(title)}</strong></p>\n"
        f"<ul>\n{items}\n</ul>\n"
        f"<p><strong>{html.escape(t('old_value'))}</strong></p>\n"
        f"<pre>{html.escape(old_json)}</pre>\n"
        f"<p><strong>{html.escape(t('new_value'))}</strong></p>\n"
        f"<pre>{html.escape(new_json)}</pre>\n"
    )
    return subject, text, body


def _get_executor(workers: int) -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="approval-notify")
        return _executor


def shutdown_executor(wait: bool = True) -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            _executor = None


atexit.register(shutdown_executor)


def _deliver(email_config: dict, recipients: list[str], subject: str, text: str, body: str,
             approval_request_id: int, entity_type: str | None) -> bool:
    try:
        return email_service.send_email(email_config, recipients, subject, text, body)
    except Exception as e:
        logger.error(
            "[approval-notifications] failed to notify admins (approval_request_id=%s entity_type=%s): %s",
            approval_request_id, entity_type, e,
            extra={"approval_request_id": approval_request_id, "entity_type": entity_type, "error": str(e)},
        )
        return False


def notify_pending_approval_admins(notice: ApprovalNotice, t: Translator = bilingual) -> bool:
    """
    Resolve admins, compose, and hand delivery off.

    Returns True when a delivery was scheduled (or, inline, succeeded).
    Never raises.
    """
    try:
        recipients = admin_directory_service.active_admin_emails()
        if not recipients:
            return False
        subject, text, body = compose(notice, t)
        config = current_app.config
        email_config = {key: config.get(key) for key in EMAIL_CONFIG_KEYS}
        if not email_service.is_configured(email_config):
            return False
    except Exception as e:
        logger.error(
            "[approval-notifications] could not prepare notification (approval_request_id=%s entity_type=%s): %s",
            notice.approval_request_id, notice.entity_type, e,
            extra={"approval_request_id": notice.approval_request_id, "entity_type": notice.entity_type},
        )
        return False

    args = (email_config, recipients, subject, text, body, notice.approval_request_id, notice.entity_type)
    if not config.get("NOTIFICATIONS_ASYNC", True):
        return _deliver(*args)

    _get_executor(int(config.get("NOTIFICATION_WORKERS") or 2)).submit(_deliver, *args)
    return True
