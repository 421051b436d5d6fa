"""Language-model backend over OpenAI-compatible endpoints (Ollama, DeepSeek).

Public API:
    - :class:`LlmClient` with ``chat`` (no retries) and ``generate_json``
      (escalating retries per :data:`RETRY_STRATEGIES`).
    - :class:`LLMApiError` / :class:`LLMRetryError`, the only errors raised.
    - :func:`fallback_response`, the single user-facing apology for chat
      failures.
    - :func:`pick_tier`, the simple/heavy heuristic for free text.

No client is created and no environment is read at import time.
"""

from __future__ import annotations

import json
import re
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from .config import Settings, load_settings
from .logging_setup import get_logger
from .models import ChatMessage

_logger = get_logger("ledger_chat.llm")


class Tier(StrEnum):
    SIMPLE = "simple"
    HEAVY = "heavy"


@dataclass(frozen=True, slots=True)
class RetryStrategy:
    """Attempts allowed on one tier and the linear backoff between them."""

    max_attempts: int
    backoff_step_sec: float = 0.0

    def delay_after(self, attempt: int) -> float:
        return self.backoff_step_sec * attempt


RETRY_STRATEGIES: Mapping[Tier, RetryStrategy] = {
    Tier.SIMPLE: RetryStrategy(max_attempts=1),
    Tier.HEAVY: RetryStrategy(max_attempts=3, backoff_step_sec=0.25),
}

# Order in which ``generate_json`` walks the tiers.
JSON_ESCALATION: tuple[Tier, ...] = (Tier.SIMPLE, Tier.HEAVY)


class LLMApiError(Exception):
    """Backend failure carrying an HTTP-like ``status`` (``None`` when unknown)."""

    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return self.message if self.status is None else f"{self.message} (status {self.status})"


class LLMRetryError(LLMApiError):
    """Every JSON attempt in the strategy table failed."""


type MessagesLike = Sequence[ChatMessage | Mapping[str, str]]


class ChatBackend(Protocol):
    """What the conversation core needs from a model backend."""

    def chat(
        self, messages: MessagesLike, *, tier: Tier | None = None, temperature: float = 0.7
    ) -> str: ...

    def generate_json(
        self, messages: MessagesLike, *, temperature: float = 0.1, force_heavy: bool = False
    ) -> str: ...


_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_AMOUNT_RE = re.compile(r"[\$£€¥]\s?-?\d[\d,]*\.?\d*")


def strip_think_tags(text: str | None) -> str:
    """Drop ``<think>...</think>`` blocks emitted by reasoning models."""

    if not text:
        return ""
    cleaned = _THINK_RE.sub("", text)
    # An unterminated block swallows the rest of the output.
    idx = cleaned.lower().find("<think>")
    if idx != -1:
        cleaned = cleaned[:idx]
    return cleaned.strip()


def is_valid_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def pick_tier(text: str) -> Tier:
    """Return ``SIMPLE`` for short, single-line, single-amount, non-CSV text."""

    short = len(text) < 140
    single_line = "\n" not in text
    one_amount = len(_AMOUNT_RE.findall(text)) <= 1
    csv_like = any(len(line.split(",")) > 3 for line in text.splitlines())
    if short and single_line and one_amount and not csv_like:
        return Tier.SIMPLE
    return Tier.HEAVY


def _to_api_error(exc: BaseException) -> LLMApiError:
    if isinstance(exc, LLMApiError):
        return exc
    if isinstance(exc, APITimeoutError):
        return LLMApiError(408, "language model request timed out")
    if isinstance(exc, APIConnectionError):
        return LLMApiError(408, f"could not connect to the language model service: {exc}")
    if isinstance(exc, APIStatusError):
        return LLMApiError(exc.status_code, exc.message or str(exc))
    return LLMApiError(getattr(exc, "status_code", None), str(exc) or exc.__class__.__name__)


def _normalize_messages(messages: MessagesLike) -> list[dict[str, str]]:
    out: list[dict[str, str]] = []
    for m in messages:
        if isinstance(m, ChatMessage):
            out.append(m.as_openai())
        else:
            out.append({"role": str(m["role"]), "content": str(m["content"])})
    return out


def _last_user_text(messages: list[dict[str, str]]) -> str:
    for m in reversed(messages):
        if m.get("role") == "user":
            return m.get("content", "")
    return ""


def _create_client(settings: Settings) -> OpenAI:
    # SDK-level retries are disabled; RETRY_STRATEGIES governs.
    return OpenAI(
        base_url=settings.base_url,
        api_key=settings.api_key,
        timeout=settings.timeout_sec,
        max_retries=0,
    )


class LlmClient:
    """Thread-safe facade over one OpenAI-compatible endpoint with two tiers."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or load_settings()
        self._sleep = sleep
        self._client: OpenAI | None = None
        self._client_lock = threading.Lock()

    @property
    def settings(self) -> Settings:
        return self._settings

    def model_for(self, tier: Tier) -> str:
        return self._settings.heavy_model if tier is Tier.HEAVY else self._settings.simple_model

    def _openai(self) -> OpenAI:
        with self._client_lock:
            if self._client is None:
                self._client = _create_client(self._settings)
            return self._client

    def _complete(
        self,
        messages: list[dict[str, str]],
        *,
        tier: Tier,
        temperature: float,
        json_mode: bool,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self.model_for(tier),
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        t0 = time.perf_counter()
        try:
            resp = self._openai().chat.completions.create(**kwargs)
        except OpenAIError as e:
            raise _to_api_error(e) from e
        dt_ms = (time.perf_counter() - t0) * 1000.0
        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            content = None
        _logger.info(
            "llm:call tier=%s model=%s json=%s latency_ms=%.2f",
            tier.value,
            kwargs["model"],
            json_mode,
            dt_ms,
        )
        return strip_think_tags(content)

    def chat(
        self,
        messages: MessagesLike,
        *,
        tier: Tier | None = None,
        temperature: float = 0.7,
    ) -> str:
        """Free-text completion. Not retried; raises :class:`LLMApiError`.

        Without an explicit ``tier`` the last user message picks one through
        :func:`pick_tier`.
        """

        normalized = _normalize_messages(messages)
        chosen = tier or pick_tier(_last_user_text(normalized))
        return self._complete(normalized, tier=chosen, temperature=temperature, json_mode=False)

    def generate_json(
        self,
        messages: MessagesLike,
        *,
        temperature: float = 0.1,
        force_heavy: bool = False,
    ) -> str:
        """Return the first structurally valid JSON text across the tiers.

        Walks :data:`JSON_ESCALATION`, giving each tier the attempts listed in
        :data:`RETRY_STRATEGIES` and sleeping ``backoff_step_sec * attempt``
        between attempts on the same tier. Raises :class:`LLMRetryError` with
        the last observed status when every attempt fails.
        """

        normalized = _normalize_messages(messages)
        tiers = [t for t in JSON_ESCALATION if not (force_heavy and t is Tier.SIMPLE)]
        last_error: LLMApiError | None = None
        total = 0
        for tier in tiers:
            strategy = RETRY_STRATEGIES[tier]
            for attempt in range(1, strategy.max_attempts + 1):
                total += 1
                try:
                    text = self._complete(
                        normalized, tier=tier, temperature=temperature, json_mode=True
                    )
                    if text and is_valid_json(text):
                        return text
                    last_error = LLMApiError(None, "model returned empty or invalid JSON")
                except LLMApiError as e:
                    last_error = e
                _logger.warning(
                    "llm:json_retry tier=%s attempt=%d error=%s",
                    tier.value,
                    attempt,
                    last_error,
                )
                if attempt < strategy.max_attempts:
                    self._sleep(strategy.delay_after(attempt))

        status = last_error.status if last_error else None
        detail = last_error.message if last_error else "no attempts configured"
        _logger.error("llm:json_failed_terminal attempts=%d error=%s", total, detail)
        raise LLMRetryError(
            status, f"JSON generation failed after {total} attempt(s). Last error: {detail}"
        )


def fallback_response(error: BaseException | None = None) -> str:
    """User-facing apology for a failed free-text request."""

    if isinstance(error, LLMApiError):
        if error.status == 404 or "not found" in error.message.lower():
            return (
                "The configured language model is not available. Pull or configure it "
                "(see LEDGER_CHAT_SIMPLE_MODEL / LEDGER_CHAT_HEAVY_MODEL) and try again."
            )
        return f"Sorry, I ran into an issue reaching the language model: {error.message}"
    if error is not None:
        return f"Sorry, an unexpected error occurred while talking to the language model: {error}"
    return (
        "I'm currently having trouble connecting to the language model service. "
        "Please make sure it is running and the configured model is available."
    )
