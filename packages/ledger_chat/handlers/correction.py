"""Field corrections on recorded transactions ("actually the coffee was $4.50").

The target is found by matching description words in the message; with
several matches the user is asked to pick one (a ``CorrectionClarification``
context) and the tentative update is applied once they answer. Field values
come from the model when no tentative value was captured locally.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any

from .. import prompting
from ..categorizer import CATEGORIES, categorize_for_direction
from ..dates import resolve_date
from ..formatting import describe
from ..logging_setup import get_logger
from ..models import (
    NOT_HANDLED,
    CorrectionClarification,
    Handled,
    HandlerResult,
    Transaction,
)
from ..parser import load_json_lenient
from .base import Handler, HandlerContext, conditional_handler, state_aware_handler

_logger = get_logger("ledger_chat.handlers.correction")

CORRECTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"\b(actually|correction|i meant|should have been|should be|was wrong|is wrong|"
        r"wrong (?:amount|date|description|category)|change (?:it|that|the)|"
        r"update (?:it|that|the)|fix (?:it|that|the))\b",
        re.IGNORECASE,
    ),
)
_ADDITIVE_RE = re.compile(r"\b(also|another|too|as well)\b", re.IGNORECASE)
_AMOUNT_RE = re.compile(r"[\$€£¥₹]\s?(\d{1,3}(?:,\d{3})+|\d+)(?:\.(\d+))?")
_DATE_WORDS_RE = re.compile(
    r"\b(yesterday|today|\d{4}-\d{1,2}-\d{1,2}|\d{1,2}/\d{1,2}(?:/\d{2,4})?|"
    r"monday|tuesday|wednesday|thursday|friday|saturday|sunday|days? ago)\b",
    re.IGNORECASE,
)
_INCOME_RE = re.compile(r"\b(income|incoming|deposit|money in)\b", re.IGNORECASE)
_EXPENSE_RE = re.compile(r"\b(expense|outgoing|payment|money out)\b", re.IGNORECASE)
_INDEX_RE = re.compile(r"^\s*#?(\d{1,2})\b")
_CANCEL_RE = re.compile(r"\b(cancel|never ?mind|forget it|none)\b", re.IGNORECASE)
_STOPWORDS = frozenset(
    "the and for was were with that this actually should been have not but from "
    "amount date description category correction meant wrong change update fix".split()
)

ALLOWED_FIELDS = ("date", "description", "amount", "currency", "direction", "category")


def _words(text: str) -> set[str]:
    return {w for w in re.findall(r"[a-z][a-z']+", text.lower()) if len(w) >= 3 and w not in _STOPWORDS}


def find_candidates(message: str, transactions: list[Transaction]) -> list[Transaction]:
    """Stored transactions whose description shares a word with ``message``."""

    wanted = _words(message)
    if not wanted:
        return []
    return [t for t in transactions if _words(t.description) & wanted]


def guess_update(message: str, reference_date: date) -> tuple[str, str] | None:
    """Cheap local read of the intended change; ``None`` when nothing is obvious."""

    m = _AMOUNT_RE.search(message)
    if m:
        value = m.group(1).replace(",", "") + (f".{m.group(2)}" if m.group(2) else "")
        return "amount", value
    if _INCOME_RE.search(message) and not _EXPENSE_RE.search(message):
        return "direction", "in"
    if _EXPENSE_RE.search(message) and not _INCOME_RE.search(message):
        return "direction", "out"
    m = _DATE_WORDS_RE.search(message)
    if m:
        return "date", resolve_date(m.group(0), reference_date)
    return None


def apply_updates(
    tx: Transaction, updates: dict[str, Any], ctx: HandlerContext
) -> tuple[Transaction, list[str]]:
    """Validated copy of ``tx`` with ``updates`` applied, plus changed field names."""

    changes: dict[str, Any] = {}
    for field, raw in updates.items():
        if field not in ALLOWED_FIELDS or raw is None:
            continue
        if field == "amount":
            try:
                value: Any = abs(float(str(raw).replace(",", "").lstrip("$€£¥₹")))
            except ValueError:
                continue
            if value <= 0:
                continue
        elif field == "date":
            value = resolve_date(str(raw), ctx.reference_date)
        elif field == "direction":
            value = str(raw).strip().lower()
            if value not in ("in", "out"):
                continue
        elif field == "currency":
            value = str(raw).strip().upper()
            if not re.fullmatch(r"[A-Z]{3}", value):
                continue
        elif field == "category":
            value = next((c for c in CATEGORIES if c.lower() == str(raw).strip().lower()), None)
            if value is None:
                continue
        else:
            value = str(raw).strip()
            if not value:
                continue
        if getattr(tx, field) != value:
            changes[field] = value

    if ("direction" in changes or "description" in changes) and "category" not in changes:
        changes["category"] = categorize_for_direction(
            changes.get("description", tx.description),
            tx.type,
            changes.get("direction", tx.direction),
        )
    if not changes:
        return tx, []
    return tx.model_copy(update=changes), [f for f in changes if f in updates]


def _updates_from_model(ctx: HandlerContext, target: Transaction, message: str) -> dict[str, Any]:
    raw = ctx.llm.generate_json(
        prompting.system_and_user(
            prompting.build_system_prompt(ctx.today),
            prompting.build_correction_prompt(message, target),
        )
    )
    obj = load_json_lenient(raw)
    if not isinstance(obj, dict) or not obj.get("correction_possible"):
        return {}
    updates = obj.get("field_updates")
    return dict(updates) if isinstance(updates, dict) else {}


def correct_transaction(
    ctx: HandlerContext,
    target: Transaction,
    message: str,
    field: str = "",
    new_value: str = "",
) -> HandlerResult:
    if field:
        updates: dict[str, Any] = {field: new_value}
    else:
        updates = _updates_from_model(ctx, target, message)
        if not updates:
            guessed = guess_update(message, ctx.reference_date)
            updates = {guessed[0]: guessed[1]} if guessed else {}
    updated, changed = apply_updates(target, updates, ctx)
    if not changed:
        return Handled(
            response=(
                f"I couldn't work out what to change on {describe(target)}. You could say, "
                "for example, 'the amount should be $15'."
            )
        )
    ctx.sink.update(updated)
    ctx.state.set_last_correction_target(updated.id)
    _logger.info("correction:applied txn_id=%s fields=%s", updated.id, ",".join(changed))
    parts = ", ".join(f"{f} {getattr(target, f)} -> {getattr(updated, f)}" for f in changed)
    return Handled(response=f'Updated "{updated.description}": {parts}.')


def _default_candidates(ctx: HandlerContext) -> list[Transaction]:
    """The last corrected record, else every record of the most recent batch."""

    last_id = ctx.state.last_correction_txn_id
    if last_id:
        tx = ctx.sink.get(last_id)
        if tx is not None:
            return [tx]
    memo = ctx.state.memo
    if memo is not None:
        batch = ctx.sink.by_batch(memo.batch_id)
        if batch:
            return batch
    items = ctx.sink.list()
    return ctx.sink.by_batch(items[-1].batch_id) if items else []


def correction_handler(*, priority: int = 70) -> Handler:
    def _run(ctx: HandlerContext) -> HandlerResult:
        candidates = find_candidates(ctx.message, ctx.sink.list()) or _default_candidates(ctx)
        if len(candidates) > 1:
            guessed = guess_update(ctx.message, ctx.reference_date)
            ctx.state.set_correction_clarification(
                CorrectionClarification(
                    original_message=ctx.message,
                    field=guessed[0] if guessed else "",
                    new_value=guessed[1] if guessed else "",
                    candidate_ids=tuple(t.id for t in candidates),
                    candidate_descriptions=tuple(t.description for t in candidates),
                )
            )
            listed = "\n".join(f"{i}. {describe(t)}" for i, t in enumerate(candidates, start=1))
            return Handled(
                response=f"Which transaction did you mean?\n{listed}\nReply with the number."
            )
        if not candidates:
            return NOT_HANDLED
        return correct_transaction(ctx, candidates[0], ctx.message)

    def _check(ctx: HandlerContext) -> bool:
        return len(ctx.sink) > 0 and not _ADDITIVE_RE.search(ctx.message)

    return conditional_handler(
        "correction", priority, _run, patterns=CORRECTION_PATTERNS, check=_check
    )


def _choose(reply: str, pending: CorrectionClarification) -> str | None:
    m = _INDEX_RE.match(reply)
    if m:
        idx = int(m.group(1)) - 1
        if 0 <= idx < len(pending.candidate_ids):
            return pending.candidate_ids[idx]
        return None
    lowered = reply.lower()
    hits = [
        txn_id
        for txn_id, desc in zip(pending.candidate_ids, pending.candidate_descriptions)
        if desc.lower() in lowered
    ]
    return hits[0] if len(hits) == 1 else None


def correction_clarification_handler(*, priority: int = 35) -> Handler:
    def _run(ctx: HandlerContext, pending: CorrectionClarification) -> HandlerResult:
        if _CANCEL_RE.search(ctx.message):
            ctx.state.clear_pending()
            return Handled(response="Okay, I won't change anything.")
        chosen = _choose(ctx.message, pending)
        if chosen is None:
            return Handled(
                response=(
                    f"Please reply with a number between 1 and {len(pending.candidate_ids)}, "
                    "or say 'cancel'."
                )
            )
        ctx.state.clear_pending()
        target = ctx.sink.get(chosen)
        if target is None:
            return Handled(response="That transaction is no longer in the list.")
        return correct_transaction(
            ctx, target, pending.original_message, pending.field, pending.new_value
        )

    return state_aware_handler(
        "correction_clarification", priority, CorrectionClarification, _run
    )
