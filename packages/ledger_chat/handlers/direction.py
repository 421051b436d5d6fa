"""Direction handlers: answering "was that money in or out?" and bulk relabels."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Literal

from ..categorizer import categorize_for_direction
from ..formatting import direction_label
from ..intents import has_currency_amount
from ..logging_setup import get_logger
from ..models import NOT_HANDLED, DirectionClarification, Direction, Handled, HandlerResult
from ..sink import TransactionSink
from .base import Handler, HandlerContext, conditional_handler, state_aware_handler

_logger = get_logger("ledger_chat.handlers.direction")

IN_RE = re.compile(
    r"\b(in|incoming|income|deposits?|received|credit|credited|money in|earned)\b",
    re.IGNORECASE,
)
OUT_RE = re.compile(
    r"\b(out|outgoing|expenses?|spent|payments?|paid|debit|debited|money out|purchases?)\b",
    re.IGNORECASE,
)
CANCEL_RE = re.compile(r"\b(cancel|never ?mind|skip|forget it|leave it)\b", re.IGNORECASE)

type DirectionReply = Literal["in", "out", "cancel"] | None


def classify_direction_reply(text: str) -> DirectionReply:
    """``in``/``out``/``cancel``, or ``None`` when unclear or both sides match."""

    if CANCEL_RE.search(text):
        return "cancel"
    is_in = bool(IN_RE.search(text))
    is_out = bool(OUT_RE.search(text))
    if is_in == is_out:
        return None
    return "in" if is_in else "out"


def apply_direction(sink: TransactionSink, ids: Iterable[str], direction: Direction) -> tuple[int, int]:
    """Set ``direction`` on each stored id; return ``(updated, missing)``."""

    updated = 0
    missing = 0
    for txn_id in ids:
        tx = sink.get(txn_id)
        if tx is None:
            missing += 1
            continue
        if tx.direction != direction:
            sink.update(
                tx.model_copy(
                    update={
                        "direction": direction,
                        "category": categorize_for_direction(tx.description, tx.type, direction),
                    }
                )
            )
        updated += 1
    return updated, missing


def direction_clarification_handler(
    *,
    priority: int = 10,
    classify: Callable[[str], DirectionReply] = classify_direction_reply,
) -> Handler:
    def _run(ctx: HandlerContext, pending: DirectionClarification) -> HandlerResult:
        reply = classify(ctx.message)
        if reply == "cancel":
            ctx.state.clear_pending()
            return Handled(response="Okay, I'll leave those transactions as they are.")
        if reply is None:
            return Handled(
                response=(
                    "Sorry, I didn't catch that. Were those transactions money coming in "
                    "(income) or going out (expenses)? You can also say 'cancel'."
                )
            )
        updated, missing = apply_direction(ctx.sink, pending.transaction_ids, reply)
        ctx.state.clear_pending()
        _logger.info(
            "direction:resolved direction=%s updated=%d missing=%d", reply, updated, missing
        )
        if updated == 0:
            return Handled(
                response="Those transactions are no longer in the list, so there was nothing to update."
            )
        return Handled(response=f"Got it, marked {updated} transaction(s) as {direction_label(reply)}.")

    return state_aware_handler(
        "direction_clarification", priority, DirectionClarification, _run
    )


def bulk_direction_correction_handler(*, priority: int = 50) -> Handler:
    """Relabel every stored transaction after "mark all as income"-style phrasing.

    Reads the direction hint the context-enrichment middleware derived.
    """

    def _check(ctx: HandlerContext) -> bool:
        return (
            ctx.explicit_direction in ("in", "out")
            and not has_currency_amount(ctx.message)
            and len(ctx.sink) > 0
        )

    def _run(ctx: HandlerContext) -> HandlerResult:
        direction = ctx.explicit_direction
        if direction not in ("in", "out"):
            return NOT_HANDLED
        updated, _ = apply_direction(ctx.sink, (t.id for t in ctx.sink.list()), direction)
        ctx.state.clear_pending()
        _logger.info("direction:bulk_relabel direction=%s updated=%d", direction, updated)
        return Handled(
            response=f"Okay, I've marked all {updated} transaction(s) as {direction_label(direction)}."
        )

    return conditional_handler("bulk_direction_correction", priority, _run, check=_check)
