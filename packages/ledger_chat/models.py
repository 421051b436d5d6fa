"""Data models and type aliases for ``ledger_chat``.

``Transaction`` is a Pydantic model because it sits on the boundary with
language-model output and the CLI (``model_dump``/``model_copy`` are used
throughout). Conversation-side records (pending contexts, handler results,
chat messages) are frozen dataclasses: they are created once and replaced,
never mutated in place.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

type Direction = Literal["in", "out", "unknown"]
type Role = Literal["user", "assistant", "system"]

UNKNOWN = "unknown"


class Transaction(BaseModel):
    """The canonical extracted fact.

    ``amount`` is always a non-negative magnitude; the sign lives in
    ``direction``. A record whose ``needs_clarification`` is set is not final
    and must never reach the transaction sink.
    """

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: str
    batch_id: str
    date: str = UNKNOWN
    description: str = UNKNOWN
    type: str = UNKNOWN
    notes: str = ""
    amount: float = 0.0
    currency: str = "USD"
    direction: Direction = "out"
    category: str = "Other / Uncategorized"
    needs_clarification: str | None = None

    @field_validator("amount")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        return abs(float(v))

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return (v or "USD").upper()

    @property
    def is_final(self) -> bool:
        """``amount > 0`` and at least one identifying field is known."""

        return self.amount > 0 and (self.description != UNKNOWN or self.date != UNKNOWN)


type Transactions = Sequence[Transaction]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Role
    content: str

    def as_openai(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


# ---------------------------------------------------------------------------
# Pending contexts (at most one active at a time, see ``state.py``)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DirectionClarification:
    """Transactions whose direction is ambiguous and awaits an in/out reply."""

    transaction_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SplitBillShare:
    """A shared bill awaiting the user's personal share."""

    total: float
    currency: str
    original_message: str
    date: str
    description: str


@dataclass(frozen=True, slots=True)
class CorrectionClarification:
    """A field correction that could apply to several candidate transactions."""

    original_message: str
    field: str
    new_value: str
    candidate_ids: tuple[str, ...]
    candidate_descriptions: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class DuplicateConfirmation:
    """Fingerprint duplicates held back until the user explicitly overrides."""

    transactions: tuple[Transaction, ...]


type PendingContext = (
    DirectionClarification | SplitBillShare | CorrectionClarification | DuplicateConfirmation
)


@dataclass(frozen=True, slots=True)
class CorrectionMemo:
    """Last raw user message plus the batch it produced.

    Used by the count-correction path to re-analyze the original text together
    with a "you missed one" hint.
    """

    last_message: str
    batch_id: str


# ---------------------------------------------------------------------------
# Handler results (tagged variant)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Handled:
    """A handler claimed the message.

    ``response`` is ``None`` when the handler already spoke through the status
    channel. ``transactions`` are merged into the sink by middleware; when
    ``announce`` is True the middleware folds an "Added N" suffix onto the
    response.
    """

    response: str | None = None
    transactions: tuple[Transaction, ...] = field(default_factory=tuple)
    announce: bool = True


@dataclass(frozen=True, slots=True)
class NotHandled:
    pass


NOT_HANDLED = NotHandled()

type HandlerResult = Handled | NotHandled
