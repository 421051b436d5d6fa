"""Re-analysis after "you missed one" style feedback on the previous extraction."""

from __future__ import annotations

import re
from collections.abc import Callable

from .. import prompting
from ..extraction import (
    apply_explicit_direction,
    extract_transactions,
    partition_clarifications,
)
from ..fingerprint import split_new_and_duplicates
from ..intents import looks_like_new_transaction
from ..llm import LLMApiError
from ..logging_setup import get_logger
from ..models import NOT_HANDLED, Handled, HandlerResult
from .base import Handler, HandlerContext

_logger = get_logger("ledger_chat.handlers.count_correction")

COUNT_KEYWORDS_RE = re.compile(
    r"\b(missed|missing|forgot|should be|should have been|only|there (?:were|are|was)|"
    r"you (?:got|found)|not all|count)\b",
    re.IGNORECASE,
)
_DIGIT_RE = re.compile(r"\d")


def is_count_correction(text: str) -> bool:
    """A count keyword together with a digit ("there were 3, you missed one")."""

    return bool(COUNT_KEYWORDS_RE.search(text) and _DIGIT_RE.search(text))


def count_correction_handler(
    *,
    priority: int = 40,
    detect: Callable[[str], bool] = is_count_correction,
) -> Handler:
    def _applies(ctx: HandlerContext) -> bool:
        return (
            ctx.state.memo is not None
            and detect(ctx.message)
            and not looks_like_new_transaction(ctx.message)
        )

    def _run(ctx: HandlerContext) -> HandlerResult:
        memo = ctx.state.memo
        if memo is None:
            return NOT_HANDLED
        combined = prompting.build_count_correction_text(memo.last_message, ctx.message)
        ctx.status.set_status("Re-analyzing your previous message…", 30)
        try:
            extraction = extract_transactions(
                combined,
                llm=ctx.llm,
                reference_date=ctx.reference_date,
                force_heavy=True,
                base_currency=ctx.base_currency,
            )
        except LLMApiError as e:
            _logger.warning("count_correction:failed status=%s error=%s", e.status, e.message)
            ctx.state.clear_correction_context()
            return Handled(
                response=(
                    "Sorry, I couldn't re-analyze your previous message just now. "
                    "Could you list the transactions again?"
                )
            )

        records = apply_explicit_direction(extraction.transactions, ctx.explicit_direction)
        clear, unclear = partition_clarifications(records)
        new, dups = split_new_and_duplicates(clear, ctx.sink.list())
        _logger.info(
            "count_correction:done batch_id=%s found=%d new=%d duplicates=%d unclear=%d",
            extraction.batch_id,
            len(records),
            len(new),
            len(dups),
            len(unclear),
        )
        ctx.state.clear_correction_context()
        ctx.state.set_memo(memo.last_message, extraction.batch_id)

        response = (
            f"Okay, I've re-analyzed and found {len(records)} transaction(s) in your "
            "original message."
        )
        if not new and not unclear:
            response += " They were all already recorded."
        if unclear and unclear[0].needs_clarification:
            response += f" One more question: {unclear[0].needs_clarification}"
        return Handled(response=response, transactions=tuple(new))

    return Handler(name="count_correction", priority=priority, applies=_applies, run=_run)
