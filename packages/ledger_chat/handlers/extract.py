"""General extraction, its first-message variant, and the bulk-paste hand-off."""

from __future__ import annotations

from collections.abc import Callable

from ..bulk import process_bulk
from ..extraction import (
    Extraction,
    apply_explicit_direction,
    extract_transactions,
    partition_clarifications,
)
from ..fingerprint import split_new_and_duplicates
from ..formatting import describe
from ..intents import is_bulk_data, looks_like_transaction
from ..logging_setup import get_logger
from ..models import Handled, HandlerResult, Transaction
from .base import Handler, HandlerContext, conditional_handler
from .duplicates import ask_duplicate_confirmation

_logger = get_logger("ledger_chat.handlers.extract")

# The first substantive message may follow at most one earlier user turn.
INITIAL_MAX_PRIOR_USER_TURNS = 1

NOTHING_FOUND = (
    "I couldn't find any transactions in that message. Could you tell me the amount "
    "and what it was for?"
)


def _listing(transactions: list[Transaction]) -> str:
    shown = "; ".join(describe(t) for t in transactions[:5])
    if len(transactions) > 5:
        shown += f"; and {len(transactions) - 5} more"
    return shown


def run_extraction(ctx: HandlerContext) -> tuple[str, list[Transaction]]:
    """Extract, dedup against the sink and decide any follow-up question.

    Returns the reply text and the net-new clear records; the caller hands
    the records to the sink. Sets at most one pending context.
    """

    ctx.status.set_status("Extracting transactions…", 30)
    extraction: Extraction = extract_transactions(
        ctx.message,
        llm=ctx.llm,
        reference_date=ctx.reference_date,
        base_currency=ctx.base_currency,
    )
    records = apply_explicit_direction(extraction.transactions, ctx.explicit_direction)
    if not records:
        _logger.info("extract:empty batch_id=%s", extraction.batch_id)
        return NOTHING_FOUND, []

    clear, unclear = partition_clarifications(records)
    new, dups = split_new_and_duplicates(clear, ctx.sink.list())
    ctx.state.set_memo(ctx.message, extraction.batch_id)
    _logger.info(
        "extract:partitioned batch_id=%s new=%d duplicates=%d unclear=%d",
        extraction.batch_id,
        len(new),
        len(dups),
        len(unclear),
    )

    parts: list[str] = []
    if new:
        parts.append(f"Got it: {_listing(new)}.")
    if unclear:
        question = unclear[0].needs_clarification
        parts.append(f"I need a bit more detail about {describe(unclear[0])}: {question}")
    elif dups and not new:
        ctx.state.set_duplicate_confirmation(dups)
        parts.append(ask_duplicate_confirmation(dups))
    elif dups:
        parts.append(f"Skipped {len(dups)} transaction(s) you had already recorded.")

    defaulted = [t.id for t in new if t.id in extraction.defaulted_direction_ids]
    if defaulted and ctx.explicit_direction is None and ctx.state.pending is None:
        ctx.state.set_direction_clarification(defaulted)
        parts.append(
            f"I couldn't tell whether {len(defaulted)} of these was money in or out, so I "
            "recorded it as an expense. Was it income or an expense?"
        )
    return " ".join(parts), new


def extraction_handler(
    *,
    priority: int = 90,
    detect: Callable[[str], bool] = looks_like_transaction,
) -> Handler:
    def _run(ctx: HandlerContext) -> HandlerResult:
        response, new = run_extraction(ctx)
        return Handled(response=response, transactions=tuple(new))

    def _check(ctx: HandlerContext) -> bool:
        return detect(ctx.message)

    return conditional_handler("extraction", priority, _run, check=_check, extracts=True)


def initial_data_handler(
    *,
    priority: int = 88,
    detect: Callable[[str], bool] = looks_like_transaction,
) -> Handler:
    """First substantive message: same mechanics, but speaks through the status channel."""

    def _check(ctx: HandlerContext) -> bool:
        prior_user_turns = max(ctx.status.user_turns() - 1, 0)
        return (
            prior_user_turns <= INITIAL_MAX_PRIOR_USER_TURNS
            and not is_bulk_data(ctx.message)
            and detect(ctx.message)
        )

    def _run(ctx: HandlerContext) -> HandlerResult:
        response, new = run_extraction(ctx)
        if new:
            response = f"{response} Added {len(new)} transaction(s)."
        ctx.status.append_message("assistant", response)
        return Handled(response=None, transactions=tuple(new), announce=False)

    return conditional_handler("initial_data", priority, _run, check=_check, extracts=True)


def bulk_data_handler(*, priority: int = 85) -> Handler:
    def _run(ctx: HandlerContext) -> HandlerResult:
        process_bulk(
            ctx.message,
            llm=ctx.llm,
            sink=ctx.sink,
            status=ctx.status,
            reference_date=ctx.reference_date,
            concurrency=ctx.bulk_concurrency,
            base_currency=ctx.base_currency,
            explicit_direction=ctx.explicit_direction,
        )
        ctx.state.clear_correction_context()
        return Handled(response=None)

    def _check(ctx: HandlerContext) -> bool:
        return is_bulk_data(ctx.message)

    return conditional_handler("bulk_data", priority, _run, check=_check, extracts=True)
