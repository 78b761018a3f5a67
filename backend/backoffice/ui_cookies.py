# Overview: Short-lived JSON cookies that carry user feedback across post-redirect-get.

"""
UI notice / flash cookie store.

Three single-use payloads:
- ui_notice         {message, autoClose?, sticky?}   path "/",        Max-Age 30
- basic_info_flash  {type, values, error, modalMode} path route base, Max-Age 60
- ui_error          {message}                        path "/",        Max-Age 30

Values are JSON, URL-encoded, SameSite=Lax. Reads are destructive: the reader
always queues an expired cookie with the same name and path. A malformed
cookie reads as None.

Writers and readers run inside request handlers and services that do not own
the response object, so cookie changes are attached with after_this_request.
"""
from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote, unquote

from flask import after_this_request, request

logger = logging.getLogger(__name__)

UI_NOTICE_COOKIE = "ui_notice"
FLASH_COOKIE = "basic_info_flash"
UI_ERROR_COOKIE = "ui_error"

UI_NOTICE_MAX_AGE = 30
FLASH_MAX_AGE = 60
UI_ERROR_MAX_AGE = 30


def encode_payload(payload: Any) -> str:
    return quote(json.dumps(payload, ensure_ascii=False, separators=(",", ":")), safe="")


def decode_payload(raw: str | None) -> Any | None:
    """Parse an encoded cookie value; anything malformed yields None."""
    if not raw:
        return None
    try:
        return json.loads(unquote(raw))
    except (TypeError, ValueError):
        return None


def set_json_cookie(name: str, payload: Any, *, path: str = "/", max_age: int = UI_NOTICE_MAX_AGE) -> None:
    value = encode_payload(payload)

    @after_this_request
    def _set_cookie(response):
        response.set_cookie(
            name,
            value,
            max_age=max_age,
            path=path,
            samesite="Lax",
            httponly=True,
        )
        return response


def clear_cookie(name: str, *, path: str = "/") -> None:
    @after_this_request
    def _clear_cookie(response):
        response.delete_cookie(name, path=path, samesite="Lax", httponly=True)
        return response


def consume_json_cookie(name: str, *, path: str = "/") -> Any | None:
    """Read-once: return the decoded payload (or None) and clear the cookie."""
    raw = request.cookies.get(name)
    if raw is None:
        return None
    payload = decode_payload(raw)
    if payload is None:
        logger.warning("Discarding malformed %s cookie", name)
    clear_cookie(name, path=path)
    return payload


def set_ui_notice(message: str, *, auto_close: bool = True, sticky: bool = False) -> None:
    payload: dict[str, Any] = {"message": message, "autoClose": auto_close}
    if sticky:
        payload["sticky"] = True
    set_json_cookie(UI_NOTICE_COOKIE, payload, path="/", max_age=UI_NOTICE_MAX_AGE)


def consume_ui_notice() -> dict | None:
    return consume_json_cookie(UI_NOTICE_COOKIE, path="/")


def set_flash(base_path: str, *, type: str, values: dict, error: str | None, modal_mode: str) -> None:
    payload = {"type": type, "values": values, "error": error, "modalMode": modal_mode}
    set_json_cookie(FLASH_COOKIE, payload, path=base_path, max_age=FLASH_MAX_AGE)


def consume_flash(base_path: str) -> dict | None:
    return consume_json_cookie(FLASH_COOKIE, path=base_path)


def set_ui_error(message: str) -> None:
    set_json_cookie(UI_ERROR_COOKIE, {"message": message}, path="/", max_age=UI_ERROR_MAX_AGE)


def consume_ui_error() -> dict | None:
    return consume_json_cookie(UI_ERROR_COOKIE, path="/")
