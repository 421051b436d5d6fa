"""Scripted stand-in for :class:`ledger_chat.llm.LlmClient`.

Replies are consumed in order per method. A reply may be a string, an
exception instance (raised instead of returned) or a callable receiving the
normalized messages. When a script runs dry the ``default_json`` /
``default_chat`` value is returned, so tests only script what they assert on.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterable
from typing import Any

from ledger_chat.models import ChatMessage

Reply = str | BaseException | Callable[[list[dict[str, str]]], str]


def tx_json(*transactions: dict[str, Any]) -> str:
    """``{"transactions": [...]}`` as the model would send it."""

    return json.dumps({"transactions": list(transactions)})


def _normalize(messages: Iterable[Any]) -> list[dict[str, str]]:
    out = []
    for m in messages:
        out.append(m.as_openai() if isinstance(m, ChatMessage) else dict(m))
    return out


class ScriptedLLM:
    def __init__(
        self,
        *,
        json_replies: Iterable[Reply] = (),
        chat_replies: Iterable[Reply] = (),
        default_json: str = '{"transactions": []}',
        default_chat: str = "Sure.",
    ) -> None:
        self._json = list(json_replies)
        self._chat = list(chat_replies)
        self.default_json = default_json
        self.default_chat = default_chat
        self.json_calls: list[dict[str, Any]] = []
        self.chat_calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def _play(self, script: list[Reply], default: str, messages: list[dict[str, str]]) -> str:
        with self._lock:
            reply: Reply = script.pop(0) if script else default
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(messages)
        return reply

    def generate_json(self, messages, *, temperature: float = 0.1, force_heavy: bool = False) -> str:
        normalized = _normalize(messages)
        with self._lock:
            self.json_calls.append({"messages": normalized, "force_heavy": force_heavy})
        return self._play(self._json, self.default_json, normalized)

    def chat(self, messages, *, tier=None, temperature: float = 0.7) -> str:
        normalized = _normalize(messages)
        with self._lock:
            self.chat_calls.append({"messages": normalized, "tier": tier, "temperature": temperature})
        return self._play(self._chat, self.default_chat, normalized)

    @staticmethod
    def user_text(call: dict[str, Any]) -> str:
        return next(m["content"] for m in reversed(call["messages"]) if m["role"] == "user")
