"""Environment-driven settings.

Nothing here is read at import time. Callers build a :class:`Settings` through
:func:`load_settings` right before they need it, after the CLI has loaded any
``.env`` file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_PROVIDER_DEFAULTS: dict[str, dict[str, str]] = {
    "ollama": {
        "base_url": "http://localhost:11434/v1",
        "simple_model": "llama3:latest",
        "heavy_model": "deepseek-r1:8b",
    },
    "deepseek": {
        "base_url": "https://api.deepseek.com",
        "simple_model": "deepseek-chat",
        "heavy_model": "deepseek-reasoner",
    },
}

DEFAULT_PROVIDER = "ollama"
DEFAULT_TIMEOUT_SEC = 60.0
DEFAULT_BULK_CONCURRENCY = 5
DEFAULT_BASE_CURRENCY = "USD"


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved runtime settings for one conversation engine."""

    provider: str
    base_url: str
    api_key: str
    simple_model: str
    heavy_model: str
    timeout_sec: float = DEFAULT_TIMEOUT_SEC
    bulk_concurrency: int = DEFAULT_BULK_CONCURRENCY
    base_currency: str = DEFAULT_BASE_CURRENCY


def _env_str(name: str) -> str | None:
    val = os.getenv(name)
    if val is None:
        return None
    val = val.strip()
    return val or None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        val = float(raw)
    except ValueError:
        return default
    return val if val > 0 else default


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        val = int(raw)
    except ValueError:
        return default
    return val if val > 0 else default


def load_settings() -> Settings:
    """Build :class:`Settings` from ``LEDGER_CHAT_*`` environment variables.

    Unknown providers fall back to ``ollama`` defaults for URL and models so an
    explicit ``LEDGER_CHAT_BASE_URL`` can still point at any OpenAI-compatible
    server. Malformed numbers fall back to defaults instead of raising.
    """

    provider = (_env_str("LEDGER_CHAT_PROVIDER") or DEFAULT_PROVIDER).lower()
    defaults = _PROVIDER_DEFAULTS.get(provider, _PROVIDER_DEFAULTS[DEFAULT_PROVIDER])

    api_key = (
        _env_str("LEDGER_CHAT_API_KEY")
        or (_env_str("DEEPSEEK_API_KEY") if provider == "deepseek" else None)
        # The local Ollama server ignores the key but the SDK requires one.
        or "ollama"
    )

    return Settings(
        provider=provider,
        base_url=_env_str("LEDGER_CHAT_BASE_URL") or defaults["base_url"],
        api_key=api_key,
        simple_model=_env_str("LEDGER_CHAT_SIMPLE_MODEL") or defaults["simple_model"],
        heavy_model=_env_str("LEDGER_CHAT_HEAVY_MODEL") or defaults["heavy_model"],
        timeout_sec=_env_float("LEDGER_CHAT_TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC),
        bulk_concurrency=_env_int("LEDGER_CHAT_BULK_CONCURRENCY", DEFAULT_BULK_CONCURRENCY),
        base_currency=(_env_str("LEDGER_CHAT_BASE_CURRENCY") or DEFAULT_BASE_CURRENCY).upper(),
    )
