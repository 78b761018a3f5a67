# Overview: Service-layer operations for bilingual naming; Latin -> Urdu via Azure with DeepL fallback.

"""
Bilingual Naming Service

Two modes:
- translate      meaning-preserving Latin -> Urdu
- transliterate  script conversion Latin -> Arabic script (Urdu)

PROVIDER CHAIN: Azure is always tried first; DeepL is only a fallback. A
provider that is not configured fails with a "not configured" reason and
the chain moves on, it never fakes a success. DeepL has no transliteration
endpoint, so it translates in both modes.

TIMEOUT: every outbound call is bounded by TRANSLATION_HTTP_TIMEOUT_MS
(default 8000) and fails with "Request timed out after <ms>ms".

CACHE: in-process, keyed "<mode>:<text>" verbatim, TTL from
TRANSLATION_CACHE_TTL_MS (<= 0 disables it). The cache holds at most
TRANSLATION_CACHE_MAX_ENTRIES entries; when full, expired entries are
dropped first, then the oldest insertions. A lock guards the dict because
Flask serves requests on multiple threads.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any

import httpx
from flask import current_app, g, has_app_context, has_request_context

from ..validation import ValidationError
from backoffice.time_utils import monotonic_ms

logger = logging.getLogger(__name__)

MODES = ("translate", "transliterate")

DEFAULT_AZURE_ENDPOINT = "https://api.cognitive.microsofttranslator.com"
DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"
DEEPL_PRO_URL = "https://api.deepl.com/v2/translate"
DEFAULT_TIMEOUT_MS = 8000


class ProviderError(Exception):
    """A single provider failed; the message is safe to log and to aggregate."""


class TranslationError(Exception):
    """
    Every provider in the chain failed.

    Carries each provider's reason so the caller can log them separately.
    """

    def __init__(self, message: str, azure_error: str | None = None, deepl_error: str | None = None):
        super().__init__(message)
        self.azure_error = azure_error
        self.deepl_error = deepl_error


@dataclass(frozen=True)
class TranslationResult:
    translated: str
    provider: str
    azure_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "translated": self.translated,
            "provider": self.provider,
            "azure_error": self.azure_error,
        }


def normalize_mode(mode: str | None) -> str:
    return "transliterate" if (mode or "").strip().lower() == "transliterate" else "translate"


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class TranslationCache:
    """TTL + size bounded store of {translated, provider} per "<mode>:<text>"."""

    def __init__(self):
        self._entries: OrderedDict[str, tuple[float, dict]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key(mode: str, text: str) -> str:
        return f"{mode}:{text}"

    def get(self, mode: str, text: str, ttl_ms: int) -> dict | None:
        if ttl_ms <= 0:
            return None
        key = self.key(mode, text)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if monotonic_ms() - stored_at > ttl_ms:
                del self._entries[key]
                return None
            return dict(value)

    def set(self, mode: str, text: str, value: dict, ttl_ms: int, max_entries: int) -> None:
        if ttl_ms <= 0:
            return
        key = self.key(mode, text)
        now = monotonic_ms()
        with self._lock:
            self._entries.pop(key, None)
            if max_entries > 0 and len(self._entries) >= max_entries:
                self._evict(now, ttl_ms, max_entries)
            self._entries[key] = (now, dict(value))

    def _evict(self, now: float, ttl_ms: int, max_entries: int) -> None:
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at > ttl_ms]
        for k in expired:
            del self._entries[k]
        while len(self._entries) >= max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


cache = TranslationCache()


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

def _post(client: httpx.Client, url: str, timeout_ms: int, **kwargs) -> tuple[int, str]:
    """
    POST and return (status, raw body); timeouts and transport errors become ProviderError.

    httpx timeouts apply per phase, so a server trickling its body can outlive
    them. The body is streamed and the whole call is held to `timeout_ms`.
    """
    deadline = monotonic_ms() + timeout_ms
    try:
        with client.stream("POST", url, **kwargs) as response:
            _check_deadline(deadline, timeout_ms)
            chunks = []
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                _check_deadline(deadline, timeout_ms)
            body = b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")
    except httpx.TimeoutException as e:
        raise ProviderError(f"Request timed out after {timeout_ms}ms") from e
    except httpx.HTTPError as e:
        raise ProviderError(f"Request failed: {e}") from e
    return response.status_code, body


def _check_deadline(deadline: float, timeout_ms: int) -> None:
    if monotonic_ms() > deadline:
        raise ProviderError(f"Request timed out after {timeout_ms}ms")


def _parse_json(raw: str, provider_label: str) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ProviderError(f"{provider_label} invalid JSON: {raw}") from e


class TranslationProvider:
    """Common capability of every provider in the chain."""

    name = "provider"

    def translate(self, client: httpx.Client, mode: str, text: str, timeout_ms: int) -> str:
        raise NotImplementedError


class AzureProvider(TranslationProvider):
    name = "azure"

    def __init__(self, key: str | None, region: str | None, endpoint: str | None = None):
        self.key = key
        self.region = region
        self.endpoint = (endpoint or DEFAULT_AZURE_ENDPOINT).rstrip("/")

    def url_for(self, mode: str) -> str:
        if mode == "transliterate":
            return f"{self.endpoint}/transliterate?api-version=3.0&language=ur&fromScript=Latn&toScript=Arab"
        return f"{self.endpoint}/translate?api-version=3.0&to=ur"

    def translate(self, client, mode, text, timeout_ms):
        label = "transliteration" if mode == "transliterate" else "translation"
        if not self.key or not self.region or not text:
            raise ProviderError(f"Azure {label} not configured")

        status, raw = _post(
            client,
            self.url_for(mode),
            timeout_ms,
            headers={
                "Ocp-Apim-Subscription-Key": self.key,
                "Ocp-Apim-Subscription-Region": self.region,
                "Content-Type": "application/json",
            },
            json=[{"text": text}],
        )
        if status < 200 or status >= 300:
            raise ProviderError(f"Azure {status}: {raw}")

        data = _parse_json(raw, "Azure")
        first = data[0] if isinstance(data, list) and data and isinstance(data[0], dict) else {}
        if mode == "transliterate":
            result = first.get("text")
        else:
            translations = first.get("translations") or []
            result = translations[0].get("text") if translations and isinstance(translations[0], dict) else None
        if not result:
            raise ProviderError(f"Azure empty {label}: {raw}")
        return result


class DeepLProvider(TranslationProvider):
    name = "deepl"

    def __init__(self, key: str | None, url: str | None = None):
        self.key = key
        self.url = url

    def resolve_url(self) -> str | None:
        if self.url:
            return self.url
        if not self.key:
            return None
        return DEEPL_FREE_URL if self.key.endswith(":fx") else DEEPL_PRO_URL

    def translate(self, client, mode, text, timeout_ms):
        url = self.resolve_url()
        if not self.key or not url or not text:
            raise ProviderError("DeepL not configured or returned empty.")

        status, raw = _post(
            client,
            url,
            timeout_ms,
            headers={"Authorization": f"DeepL-Auth-Key {self.key}"},
            data={"text": text, "target_lang": "UR", "preserve_formatting": "1"},
        )
        if status < 200 or status >= 300:
            raise ProviderError(f"DeepL {status}: {raw}")

        data = _parse_json(raw, "DeepL")
        translations = (data or {}).get("translations") if isinstance(data, dict) else None
        result = translations[0].get("text") if translations and isinstance(translations[0], dict) else None
        if not result:
            raise ProviderError(f"DeepL empty translation: {raw}")
        return result


def providers_from_config(config) -> list[TranslationProvider]:
    """Ordered chain: Azure first, DeepL as fallback."""
    return [
        AzureProvider(
            config.get("AZURE_TRANSLATOR_KEY"),
            config.get("AZURE_TRANSLATOR_REGION"),
            config.get("AZURE_TRANSLATOR_ENDPOINT"),
        ),
        DeepLProvider(config.get("DEEPL_API_KEY"), config.get("DEEPL_API_URL")),
    ]


# ---------------------------------------------------------------------------
# Resolve
# ---------------------------------------------------------------------------

def _request_id() -> str | None:
    if has_request_context():
        return getattr(g, "request_id", None)
    return None


def resolve(
    text: str,
    mode: str = "translate",
    *,
    config=None,
    providers: list[TranslationProvider] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> TranslationResult:
    """
    Translate or transliterate `text` to Urdu.

    Order: cache -> Azure -> DeepL -> cache write. Providers are tried one at
    a time, never raced.

    Args:
        text: Latin-script source text (used verbatim as cache key)
        mode: "translate" or "transliterate" (anything else means translate)
        config: Mapping with provider keys; defaults to current_app.config
        providers: Explicit chain (defaults to Azure then DeepL from config)
        transport: httpx transport override (defaults to config
            TRANSLATION_HTTP_TRANSPORT)

    Returns:
        TranslationResult; azure_error is set when DeepL recovered.

    Raises:
        ValidationError: text is blank
        TranslationError: every provider failed
    """
    if text is None or not str(text).strip():
        raise ValidationError("Text is required")
    text = str(text)
    mode = normalize_mode(mode)

    if config is None:
        config = current_app.config if has_app_context() else {}
    ttl_ms = int(config.get("TRANSLATION_CACHE_TTL_MS") or 0)
    max_entries = int(config.get("TRANSLATION_CACHE_MAX_ENTRIES") or 0)
    timeout_ms = int(config.get("TRANSLATION_HTTP_TIMEOUT_MS") or DEFAULT_TIMEOUT_MS)
    if transport is None:
        transport = config.get("TRANSLATION_HTTP_TRANSPORT")

    cached = cache.get(mode, text, ttl_ms)
    if cached:
        return TranslationResult(cached["translated"], cached["provider"], None)

    chain = providers if providers is not None else providers_from_config(config)
    errors: dict[str, str] = {}
    started = monotonic_ms()

    with httpx.Client(timeout=timeout_ms / 1000.0, transport=transport) as client:
        for provider in chain:
            try:
                translated = provider.translate(client, mode, text, timeout_ms)
            except ProviderError as e:
                errors[provider.name] = str(e)
                logger.error(
                    "[translate] %s failed (request_id=%s mode=%s length=%d): %s",
                    provider.name, _request_id(), mode, len(text), e,
                    extra={"request_id": _request_id(), "mode": mode, "provider": provider.name},
                )
                continue

            cache.set(mode, text, {"translated": translated, "provider": provider.name}, ttl_ms, max_entries)
            logger.info(
                "[translate] resolved by %s in %.0fms (mode=%s)",
                provider.name, monotonic_ms() - started, mode,
            )
            return TranslationResult(translated, provider.name, errors.get("azure"))

    azure_error = errors.get("azure") or "unknown"
    deepl_error = errors.get("deepl") or "DeepL not configured or returned empty."
    logger.error(
        "[translate] all providers failed (request_id=%s mode=%s duration=%.0fms) azure=%s deepl=%s",
        _request_id(), mode, monotonic_ms() - started, azure_error, deepl_error,
    )
    raise TranslationError(
        f"Fallback unavailable. Azure error: {azure_error}. DeepL error: {deepl_error}",
        azure_error=azure_error,
        deepl_error=deepl_error,
    )


def try_resolve(text: str | None, mode: str = "translate") -> str | None:
    """
    Best-effort variant for form saves: returns None instead of raising.

    Failures are already logged by resolve().
    """
    if not text or not str(text).strip():
        return None
    try:
        return resolve(text, mode).translated
    except TranslationError:
        return None
