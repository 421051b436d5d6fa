"""Shared bills: detect "split $60 dinner", ask for the user's share, record it.

Only the user's own portion is ever recorded, as one outgoing ``Split``
transaction whose notes keep the original total.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from typing import NamedTuple

from .. import prompting
from ..categorizer import categorize_for_direction
from ..dates import has_date_phrase, resolve_date
from ..formatting import format_currency
from ..intents import looks_like_new_transaction
from ..llm import LLMApiError, Tier
from ..logging_setup import get_logger
from ..models import Handled, HandlerResult, SplitBillShare, Transaction
from ..parser import load_json_lenient
from .base import Handler, HandlerContext, conditional_handler, state_aware_handler

_logger = get_logger("ledger_chat.handlers.split_bill")

SPLIT_RE = re.compile(
    r"\b(split|splitting|shared|share|sharing|my (?:portion|part)|went halves|divided)\b",
    re.IGNORECASE,
)
_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY", "₹": "INR"}
_CODES = {
    "usd": "USD",
    "dollar": "USD",
    "dollars": "USD",
    "bucks": "USD",
    "eur": "EUR",
    "euro": "EUR",
    "euros": "EUR",
    "gbp": "GBP",
    "pound": "GBP",
    "pounds": "GBP",
}
_NUM = r"(\d{1,3}(?:,\d{3})+|\d+)(?:\.(\d+))?\s?(k)?\b"
_SYMBOL_AMOUNT_RE = re.compile(rf"([\$€£¥₹])\s?{_NUM}", re.IGNORECASE)
_CODE_AMOUNT_RE = re.compile(
    rf"{_NUM}\s*(usd|eur|gbp|dollars?|bucks|euros?|pounds?)\b", re.IGNORECASE
)
_BARE_NUMBER_RE = re.compile(rf"(?<![\w.]){_NUM}", re.IGNORECASE)
_EXPLICIT_SHARE_RE = re.compile(
    r"\b(?:my (?:share|part|portion)|i (?:paid|owe|covered|put in))\b"
    r"(?:\s+(?:was|is|came to|of|comes to))?\s*:?\s*[\$€£¥₹]?\s?"
    r"(\d{1,3}(?:,\d{3})+|\d+)(?:\.(\d+))?\s?(k)?\b",
    re.IGNORECASE,
)
_WHOLE_BILL_RE = re.compile(r"i (?:paid|covered)\b", re.IGNORECASE)
_HEADCOUNT_RE = re.compile(
    r"\b(?:with|between|among)\s+(?:the\s+)?\d+(?:\s+(?:other\s+)?[a-z]+)?|\b\d+\s+ways\b",
    re.IGNORECASE,
)
_SHARE_REPLY_WORDS_RE = re.compile(
    r"\b(share|my part|my portion|i paid|i owe|mine|me)\b", re.IGNORECASE
)
_CANCEL_RE = re.compile(r"\b(cancel|never ?mind|forget it|skip)\b", re.IGNORECASE)
_DESCRIPTION_STOP_RE = re.compile(r"\b(?:with|for|at|and|between|among|on)\b", re.IGNORECASE)

DEFAULT_DESCRIPTION = "Shared Item"


class Amount(NamedTuple):
    value: float
    currency: str | None
    start: int
    end: int


def _number(whole: str, frac: str | None, k: str | None) -> float:
    value = float(whole.replace(",", "") + (f".{frac}" if frac else ""))
    return value * 1000 if k else value


def find_amounts(text: str) -> list[Amount]:
    """Currency-marked amounts in order of appearance (``$1.5k`` supported)."""

    found: list[Amount] = []
    for m in _SYMBOL_AMOUNT_RE.finditer(text):
        found.append(Amount(_number(m.group(2), m.group(3), m.group(4)), _SYMBOLS[m.group(1)], *m.span()))
    for m in _CODE_AMOUNT_RE.finditer(text):
        if any(a.start <= m.start() < a.end for a in found):
            continue
        code = _CODES.get(m.group(4).lower(), "USD")
        found.append(Amount(_number(m.group(1), m.group(2), m.group(3)), code, *m.span()))
    return sorted(found, key=lambda a: a.start)


def parse_share_reply(text: str) -> float | None:
    """First number in a reply such as ``20``, ``$20.50`` or ``my share was 1.2k``."""

    m = _SYMBOL_AMOUNT_RE.search(text)
    if m:
        return _number(m.group(2), m.group(3), m.group(4))
    m = _BARE_NUMBER_RE.search(text)
    if m:
        return _number(m.group(1), m.group(2), m.group(3))
    return None


def detect_split(text: str) -> bool:
    return bool(SPLIT_RE.search(text)) and bool(find_amounts(text))


def guess_description(message: str, amounts: list[Amount]) -> str:
    """Words after the total up to with/for/at/and, title-cased."""

    tail = message[amounts[0].end :] if amounts else message
    tail = SPLIT_RE.sub(" ", tail)
    tail = _DESCRIPTION_STOP_RE.split(tail, maxsplit=1)[0]
    words = re.findall(r"[A-Za-z][A-Za-z'&-]*", tail)
    if not words:
        return DEFAULT_DESCRIPTION
    return " ".join(words[:4]).title()


def describe_shared_item(ctx: HandlerContext, amounts: list[Amount]) -> str:
    """Ask the model for a 2-4 word description; fall back to :func:`guess_description`."""

    try:
        raw = ctx.llm.chat(
            prompting.system_and_user(
                "You label shared expenses. You only ever answer with JSON.",
                prompting.build_split_description_prompt(ctx.message),
            ),
            tier=Tier.SIMPLE,
            temperature=0.1,
        )
    except LLMApiError as e:
        _logger.warning("split:describe_failed status=%s error=%s", e.status, e.message)
        return guess_description(ctx.message, amounts)
    obj = load_json_lenient(raw)
    desc = obj.get("description") if isinstance(obj, dict) else None
    if isinstance(desc, str) and desc.strip() and desc.strip().lower() != "unknown":
        return desc.strip()[:60]
    return guess_description(ctx.message, amounts)


def _date_for(message: str, amounts: list[Amount], ctx: HandlerContext) -> str:
    # Strip amounts first so "$60" is never read as a year.
    text = message
    for a in sorted(amounts, key=lambda a: a.start, reverse=True):
        text = text[: a.start] + " " + text[a.end :]
    # Headcounts ("with 3 friends", "4 ways") are not days of the month.
    text = _HEADCOUNT_RE.sub(" ", text)
    if not has_date_phrase(text):
        return ctx.today
    return resolve_date(text, ctx.reference_date)


def _explicit_share(message: str, amounts: list[Amount]) -> tuple[float | None, list[Amount]]:
    """The stated share and the remaining amounts.

    "I paid $60" only names a share when a larger amount (the bill) is also
    given; on its own it is the whole bill.
    """

    m = _EXPLICIT_SHARE_RE.search(message)
    if m is None:
        return None, amounts
    share = _number(m.group(1), m.group(2), m.group(3))
    others = [a for a in amounts if not (a.start <= m.end(1) and a.end >= m.start(1))]
    if _WHOLE_BILL_RE.match(m.group(0)) and not any(a.value > share for a in others):
        return None, amounts
    return share, others


def build_share_transaction(
    *,
    share: float,
    total: float,
    currency: str,
    description: str,
    date: str,
) -> Transaction:
    batch_id = f"split-{uuid.uuid4().hex[:8]}"
    label = f"Share of {description}"
    return Transaction(
        id=f"{batch_id}:0",
        batch_id=batch_id,
        date=date,
        description=label,
        type="Split",
        notes=f"Your share of a {format_currency(total, currency)} shared bill.",
        amount=share,
        currency=currency,
        direction="out",
        category=categorize_for_direction(description, "Split", "out"),
    )


def _ask_share(total: float, currency: str) -> str:
    return (
        f"That was a shared bill of {format_currency(total, currency)}. How much was your share? "
        "Reply with just the amount, e.g. 20."
    )


def split_bill_detection_handler(
    *,
    priority: int = 80,
    detect: Callable[[str], bool] = detect_split,
) -> Handler:
    def _run(ctx: HandlerContext) -> HandlerResult:
        amounts = find_amounts(ctx.message)
        share, others = _explicit_share(ctx.message, amounts)
        total = max((a.value for a in others), default=share or 0.0)
        currency = (amounts[0].currency if amounts else None) or ctx.base_currency
        description = describe_shared_item(ctx, others or amounts)
        date = _date_for(ctx.message, amounts, ctx)

        if share is None:
            ctx.state.set_split_bill(
                SplitBillShare(
                    total=total,
                    currency=currency,
                    original_message=ctx.message,
                    date=date,
                    description=description,
                )
            )
            _logger.info("split:awaiting_share total=%.2f currency=%s", total, currency)
            return Handled(response=_ask_share(total, currency))

        if share <= 0 or share > total:
            ctx.state.set_split_bill(
                SplitBillShare(
                    total=total,
                    currency=currency,
                    original_message=ctx.message,
                    date=date,
                    description=description,
                )
            )
            return Handled(
                response=(
                    f"Your share ({format_currency(share, currency)}) can't be more than the "
                    f"total bill ({format_currency(total, currency)}). What was your share?"
                )
            )

        tx = build_share_transaction(
            share=share, total=total, currency=currency, description=description, date=date
        )
        return Handled(
            response=f'Okay, I\'ve added your {format_currency(share, currency)} share for "{description}".',
            transactions=(tx,),
            announce=False,
        )

    def _check(ctx: HandlerContext) -> bool:
        return detect(ctx.message)

    return conditional_handler("split_bill_detection", priority, _run, check=_check)


def _looks_unrelated(ctx: HandlerContext) -> bool:
    text = ctx.message
    return (
        looks_like_new_transaction(text)
        and not _SHARE_REPLY_WORDS_RE.search(text)
        and len(text.split()) > 3
    )


def split_share_response_handler(*, priority: int = 20) -> Handler:
    def _run(ctx: HandlerContext, pending: SplitBillShare) -> HandlerResult:
        if _CANCEL_RE.search(ctx.message):
            ctx.state.clear_pending()
            return Handled(response="Okay, I won't record that shared bill.")
        share = parse_share_reply(ctx.message)
        if share is None or share <= 0:
            return Handled(response=_ask_share(pending.total, pending.currency))
        if pending.total > 0 and share > pending.total:
            return Handled(
                response=(
                    f"Your share ({format_currency(share, pending.currency)}) can't be more than "
                    f"the total bill ({format_currency(pending.total, pending.currency)}). "
                    "What was your share?"
                )
            )
        ctx.state.clear_pending()
        tx = build_share_transaction(
            share=share,
            total=pending.total,
            currency=pending.currency,
            description=pending.description,
            date=pending.date,
        )
        _logger.info("split:share_recorded share=%.2f total=%.2f", share, pending.total)
        return Handled(
            response=(
                f"Okay, I've added your {format_currency(share, pending.currency)} share "
                f'for "{pending.description}".'
            ),
            transactions=(tx,),
            announce=False,
        )

    return state_aware_handler(
        "split_share_response",
        priority,
        SplitBillShare,
        _run,
        new_transaction_check=_looks_unrelated,
    )
