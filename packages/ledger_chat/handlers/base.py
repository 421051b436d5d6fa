"""Handler contract, dispatch context and handler factories.

A :class:`Handler` pairs a cheap applicability predicate with the action that
runs once the predicate passes. The factories below build the three shapes
used throughout the chain:

- :func:`conditional_handler`: regex/keyword/custom predicate.
- :func:`state_aware_handler`: active only while a given pending context is
  set; a reply that looks like an unrelated new transaction clears the stale
  context and falls through to the rest of the chain.
- plain :class:`Handler` for everything else.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import TypeVar

from ..intents import looks_like_new_transaction
from ..llm import ChatBackend
from ..logging_setup import get_logger
from ..models import (
    NOT_HANDLED,
    CorrectionClarification,
    DirectionClarification,
    Direction,
    DuplicateConfirmation,
    HandlerResult,
    SplitBillShare,
)
from ..sink import TransactionSink
from ..state import ConversationState
from ..status import ConversationStatus

_logger = get_logger("ledger_chat.handlers")

CtxT = TypeVar("CtxT", DirectionClarification, SplitBillShare, CorrectionClarification, DuplicateConfirmation)


@dataclass(frozen=True, slots=True)
class HandlerContext:
    """Everything a handler may read or write for one message."""

    message: str
    explicit_direction: Direction | None
    state: ConversationState
    sink: TransactionSink
    status: ConversationStatus
    llm: ChatBackend
    reference_date: date
    base_currency: str = "USD"
    bulk_concurrency: int = 5

    @property
    def today(self) -> str:
        return self.reference_date.isoformat()


type Predicate = Callable[[HandlerContext], bool]
type Action = Callable[[HandlerContext], HandlerResult]


@dataclass(frozen=True, slots=True)
class Handler:
    """One link of the dispatch chain.

    ``state_aware`` handlers read a pending context and must be ordered ahead
    of every ``extracts`` handler; :class:`~ledger_chat.handlers.registry.HandlerChain`
    enforces this on registration.
    """

    name: str
    priority: int
    applies: Predicate
    run: Action
    state_aware: bool = False
    extracts: bool = False


def conditional_handler(
    name: str,
    priority: int,
    run: Action,
    *,
    patterns: Sequence[re.Pattern[str]] = (),
    keywords: Sequence[str] = (),
    check: Predicate | None = None,
    extracts: bool = False,
) -> Handler:
    """Handler that applies when any pattern/keyword matches and ``check`` passes.

    With neither patterns nor keywords, ``check`` alone decides.
    """

    lowered_keywords = tuple(k.lower() for k in keywords)

    def _applies(ctx: HandlerContext) -> bool:
        text = ctx.message
        if patterns or lowered_keywords:
            hit = any(p.search(text) for p in patterns) or any(
                k in text.lower() for k in lowered_keywords
            )
            if not hit:
                return False
        return check(ctx) if check is not None else True

    return Handler(name=name, priority=priority, applies=_applies, run=run, extracts=extracts)


def state_aware_handler(
    name: str,
    priority: int,
    kind: type[CtxT],
    run: Callable[[HandlerContext, CtxT], HandlerResult],
    *,
    new_transaction_check: Predicate | None = None,
) -> Handler:
    """Handler gated on an active pending context of type ``kind``.

    Before ``run`` is called, ``new_transaction_check`` (by default
    :func:`~ledger_chat.intents.looks_like_new_transaction` on the message)
    decides whether the reply is really a fresh request; if so the pending
    context is cleared and the handler returns ``NotHandled``.
    """

    def _default_check(ctx: HandlerContext) -> bool:
        return looks_like_new_transaction(ctx.message)

    is_new = new_transaction_check or _default_check

    def _applies(ctx: HandlerContext) -> bool:
        return ctx.state.pending_of(kind) is not None

    def _run(ctx: HandlerContext) -> HandlerResult:
        pending = ctx.state.pending_of(kind)
        if pending is None:
            return NOT_HANDLED
        if is_new(ctx):
            _logger.info("handler:stale_context handler=%s kind=%s", name, kind.__name__)
            ctx.state.clear_pending()
            return NOT_HANDLED
        return run(ctx, pending)

    return Handler(name=name, priority=priority, applies=_applies, run=_run, state_aware=True)
