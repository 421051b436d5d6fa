"""Shared extraction path: prompt, model call, recovery parse.

Used by the extraction-style handlers and by every bulk segment. Backend
errors (:class:`~ledger_chat.llm.LLMApiError`) propagate; an unusable model
reply is an empty list, not an error.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import date
from typing import NamedTuple

from . import prompting
from .categorizer import categorize_for_direction
from .llm import ChatBackend
from .logging_setup import get_logger
from .models import Direction, Transaction
from .parser import parse_report

_logger = get_logger("ledger_chat.extraction")


def new_batch_id() -> str:
    return str(uuid.uuid4())


class Extraction(NamedTuple):
    batch_id: str
    transactions: list[Transaction]
    # Ids whose direction nothing in the text or the model reply decided.
    defaulted_direction_ids: tuple[str, ...] = ()


def extract_transactions(
    text: str,
    *,
    llm: ChatBackend,
    reference_date: date,
    batch_id: str | None = None,
    force_heavy: bool = False,
    base_currency: str = "USD",
) -> Extraction:
    """Run one extraction attempt over ``text``."""

    bid = batch_id or new_batch_id()
    today = reference_date.isoformat()
    messages = prompting.system_and_user(
        prompting.build_system_prompt(today),
        prompting.build_extraction_prompt(text, today),
    )
    raw = llm.generate_json(messages, force_heavy=force_heavy)
    report = parse_report(raw, bid, reference_date, base_currency=base_currency)
    _logger.info(
        "extraction:done batch_id=%s chars=%d records=%d strategy=%s",
        bid,
        len(text),
        len(report.transactions),
        report.strategy,
    )
    return Extraction(bid, report.transactions, report.defaulted_direction_ids)


def apply_explicit_direction(
    transactions: Iterable[Transaction], direction: Direction | None
) -> list[Transaction]:
    """Force ``direction`` onto every record and re-derive its category."""

    if direction is None:
        return list(transactions)
    out: list[Transaction] = []
    for tx in transactions:
        if tx.direction == direction:
            out.append(tx)
            continue
        out.append(
            tx.model_copy(
                update={
                    "direction": direction,
                    "category": categorize_for_direction(tx.description, tx.type, direction),
                }
            )
        )
    return out


def partition_clarifications(
    transactions: Iterable[Transaction],
) -> tuple[list[Transaction], list[Transaction]]:
    """Split into ``(clear, needs_clarification)`` preserving order."""

    clear: list[Transaction] = []
    unclear: list[Transaction] = []
    for tx in transactions:
        (unclear if tx.needs_clarification else clear).append(tx)
    return clear, unclear


def with_fresh_ids(transactions: Iterable[Transaction], batch_id: str) -> list[Transaction]:
    """Copies carrying new ids in ``batch_id``, keeping input order."""

    return [
        tx.model_copy(update={"id": f"{batch_id}:{i}", "batch_id": batch_id})
        for i, tx in enumerate(transactions)
    ]
