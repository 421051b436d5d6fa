"""Explicit override for records held back as fingerprint duplicates."""

from __future__ import annotations

import re

from ..extraction import new_batch_id, with_fresh_ids
from ..formatting import describe
from ..logging_setup import get_logger
from ..models import DuplicateConfirmation, Handled, HandlerResult, Transaction
from .base import Handler, HandlerContext, state_aware_handler

_logger = get_logger("ledger_chat.handlers.duplicates")

YES_RE = re.compile(
    r"^\s*(yes|y|yeah|yep|yup|sure|ok(?:ay)?|do it|go ahead|add (?:it|them|both)(?: again| anyway)?|add again)\b",
    re.IGNORECASE,
)
NO_RE = re.compile(
    r"^\s*(no|n|nope|nah|skip|don'?t|do not|cancel|never ?mind|leave it)\b", re.IGNORECASE
)


def ask_duplicate_confirmation(duplicates: list[Transaction] | tuple[Transaction, ...]) -> str:
    listed = "; ".join(describe(t) for t in duplicates[:5])
    more = f" and {len(duplicates) - 5} more" if len(duplicates) > 5 else ""
    return (
        f"This looks like something you've already recorded: {listed}{more}. "
        "Do you want me to add it again anyway? (yes/no)"
    )


def duplicate_confirmation_handler(*, priority: int = 30) -> Handler:
    def _run(ctx: HandlerContext, pending: DuplicateConfirmation) -> HandlerResult:
        if YES_RE.search(ctx.message):
            copies = with_fresh_ids(pending.transactions, new_batch_id())
            inserted = ctx.sink.add(copies, force=True)
            ctx.state.clear_pending()
            _logger.info("duplicates:override requested=%d inserted=%d", len(copies), inserted)
            return Handled(response=f"Okay, I've added {inserted} duplicate transaction(s) anyway.")
        if NO_RE.search(ctx.message):
            ctx.state.clear_pending()
            return Handled(response="Okay, I won't add the duplicate(s).")
        return Handled(
            response="Should I add the duplicate transaction(s) anyway? Please answer yes or no."
        )

    return state_aware_handler("duplicate_confirmation", priority, DuplicateConfirmation, _run)
