"""Status/progress channel written by the conversation core.

The core only ever writes: status text with a percentage, the busy flag and
chat messages. Hosts observe changes by passing a ``listener``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal, Protocol

from .models import ChatMessage, Role


class StatusChannel(Protocol):
    def set_status(self, text: str, percent: int | None = None) -> None: ...

    def set_busy(self, busy: bool) -> None: ...

    def append_message(self, role: Role, text: str) -> None: ...


@dataclass(frozen=True, slots=True)
class StatusEvent:
    kind: Literal["status", "busy", "message"]
    text: str = ""
    percent: int | None = None
    busy: bool = False
    role: Role | None = None


class ConversationStatus:
    """Default in-memory :class:`StatusChannel` that also keeps chat history."""

    def __init__(self, listener: Callable[[StatusEvent], None] | None = None) -> None:
        self._lock = threading.Lock()
        self._listener = listener
        self.status: str = "Idle"
        self.percent: int | None = None
        self.busy: bool = False
        self.messages: list[ChatMessage] = []

    def _emit(self, event: StatusEvent) -> None:
        if self._listener is not None:
            self._listener(event)

    def set_status(self, text: str, percent: int | None = None) -> None:
        with self._lock:
            self.status = text
            self.percent = None if percent is None else max(0, min(100, int(percent)))
        self._emit(StatusEvent("status", text=text, percent=self.percent))

    def set_busy(self, busy: bool) -> None:
        with self._lock:
            self.busy = busy
        self._emit(StatusEvent("busy", busy=busy))

    def append_message(self, role: Role, text: str) -> None:
        with self._lock:
            self.messages.append(ChatMessage(role, text))
        self._emit(StatusEvent("message", text=text, role=role))

    def history(self, limit: int | None = None) -> list[ChatMessage]:
        with self._lock:
            items = list(self.messages)
        return items[-limit:] if limit else items

    def user_turns(self) -> int:
        with self._lock:
            return sum(1 for m in self.messages if m.role == "user")

    def reset(self) -> None:
        with self._lock:
            self.messages.clear()
            self.status = "Idle"
            self.percent = None
            self.busy = False
