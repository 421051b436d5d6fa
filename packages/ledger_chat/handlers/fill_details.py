"""Backfill requests ("fill in the missing categories"): detected, politely declined."""

from __future__ import annotations

import re

from ..intents import has_currency_amount
from ..models import Handled, HandlerResult
from .base import Handler, HandlerContext, conditional_handler

FILL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(fill in|fill out|backfill|complete)\b.*\b(details?|categor(?:y|ies)|dates?|fields?|info)\b", re.IGNORECASE),
    re.compile(r"\badd (?:the )?missing (details?|categor(?:y|ies)|dates?|fields?|info)\b", re.IGNORECASE),
    re.compile(r"\bmissing (details|categories|dates|fields|info)\b", re.IGNORECASE),
)

RESPONSE = (
    "I can see you'd like to fill in missing details on existing transactions. Targeted "
    "backfill isn't automated yet; you can fix a single transaction by telling me what "
    "changed, e.g. 'the coffee was actually $4.50' or 'the rent was on the 1st'."
)


def _run(ctx: HandlerContext) -> HandlerResult:
    return Handled(response=RESPONSE)


def _check(ctx: HandlerContext) -> bool:
    return not has_currency_amount(ctx.message)


def fill_details_handler(*, priority: int = 60) -> Handler:
    return conditional_handler(
        "fill_details", priority, _run, patterns=FILL_PATTERNS, check=_check
    )
