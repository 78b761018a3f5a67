# backend/backoffice/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///backoffice.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Azure Translator (primary provider)
    AZURE_TRANSLATOR_KEY = os.environ.get("AZURE_TRANSLATOR_KEY")
    AZURE_TRANSLATOR_REGION = os.environ.get("AZURE_TRANSLATOR_REGION")
    AZURE_TRANSLATOR_ENDPOINT = os.environ.get(
        "AZURE_TRANSLATOR_ENDPOINT",
        "https://api.cognitive.microsofttranslator.com",
    )

    # DeepL (fallback provider). Keys ending in ":fx" use the free endpoint.
    DEEPL_API_KEY = os.environ.get("DEEPL_API_KEY")
    DEEPL_API_URL = os.environ.get("DEEPL_API_URL")

    # 0 disables the translation cache
    TRANSLATION_CACHE_TTL_MS = _env_int("TRANSLATION_CACHE_TTL_MS", 0)
    TRANSLATION_CACHE_MAX_ENTRIES = _env_int("TRANSLATION_CACHE_MAX_ENTRIES", 5000)
    TRANSLATION_HTTP_TIMEOUT_MS = _env_int("TRANSLATION_HTTP_TIMEOUT_MS", 8000)
    # Optional httpx transport override (tests install an httpx.MockTransport)
    TRANSLATION_HTTP_TRANSPORT = None

    # Email transport; dispatch is silently disabled when either is missing
    GMAIL_USER = os.environ.get("GMAIL_USER")
    GMAIL_APP_PASSWORD = os.environ.get("GMAIL_APP_PASSWORD")
    SMTP_HOST = os.environ.get("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = _env_int("SMTP_PORT", 587)

    # Notifications are handed to a small worker pool unless disabled
    NOTIFICATIONS_ASYNC = _env_bool("NOTIFICATIONS_ASYNC", True)
    NOTIFICATION_WORKERS = _env_int("NOTIFICATION_WORKERS", 2)
