"""Cheap intent predicates over raw user text.

Every handler's applicability check is built from these functions so each
can be swapped out or tested against literal strings without a model call.
"""

from __future__ import annotations

import re
from typing import Literal

from .models import Direction

BULK_THRESHOLD_CHARS = 500
BULK_THRESHOLD_LINES = 10
EXPLICIT_HINT_MAX_CHARS = 50

_WORD_NUMBERS = (
    "zero one two three four five six seven eight nine ten eleven twelve thirteen fourteen "
    "fifteen sixteen seventeen eighteen nineteen twenty thirty forty fifty sixty seventy "
    "eighty ninety hundred thousand"
).split()
_WORD_ALT = "|".join(_WORD_NUMBERS)
_WORD_AMOUNT_RE = re.compile(
    rf"\b(?:{_WORD_ALT})(?:[- ](?:{_WORD_ALT}))*[ -](?:dollars?|bucks?|euros?|pounds?)\b"
)
_SYMBOL_AMOUNT_RE = re.compile(r"[\$£€¥₹]\s?\d{1,3}(?:,\d{3})*(?:\.\d{1,2})?|[\$£€¥₹]\s?\d+(?:\.\d+)?")
_CODE_AMOUNT_RE = re.compile(
    r"\d{1,3}(?:,\d{3})*(?:\.\d{1,2})?\s*(?:dollars?|usd|cad|eur|gbp|jpy|bucks?|pounds?|euros?|yen)\b"
)
_TXN_KEYWORD_RE = re.compile(
    r"\b(spent|paid|pay|bought|sold|received|deposit|income|expense|cost|got|transfer|sent|"
    r"charge|fee|payment|salary|invoice|refund|split|splitting|shared|purchased|purchase|ordered)\b"
)
_DATE_HINT_RE = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\b|\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?"
    r"|\b\d{4}\b|\b(yesterday|today|last week|last month|monday|tuesday|wednesday|thursday|"
    r"friday|saturday|sunday)\b"
)

_HINT_IN_RE = re.compile(r"\b(all|these are all|mark all as)\s+(in|income|deposits?)\b", re.IGNORECASE)
_HINT_OUT_RE = re.compile(
    r"\b(all|these are all|mark all as)\s+(out|expenses?|payments?|spending)\b", re.IGNORECASE
)

type Mood = Literal["greeting", "thanks", "affirmation", "capability"]

_MOOD_PATTERNS: tuple[tuple[Mood, re.Pattern[str]], ...] = (
    ("greeting", re.compile(r"^(hello|hi|hey|yo|greetings|good morning|good afternoon|good evening)\b", re.IGNORECASE)),
    ("thanks", re.compile(r"\b(thanks|thank you|thx|ty|cheers|appreciated)\b", re.IGNORECASE)),
    ("affirmation", re.compile(r"^(ok|okay|sounds good|got it|cool|alright|sure)[.!]*$", re.IGNORECASE)),
    ("capability", re.compile(r"\b(how are you|what can you do|help)\b", re.IGNORECASE)),
)


def has_currency_amount(text: str) -> bool:
    lowered = text.lower()
    return bool(_SYMBOL_AMOUNT_RE.search(lowered) or _CODE_AMOUNT_RE.search(lowered))


def looks_like_transaction(text: str) -> bool:
    """Amount-bearing text, or a transaction verb together with a date hint."""

    lowered = text.lower()
    if has_currency_amount(lowered) or _WORD_AMOUNT_RE.search(lowered):
        return True
    return bool(_TXN_KEYWORD_RE.search(lowered) and _DATE_HINT_RE.search(lowered))


def looks_like_new_transaction(text: str) -> bool:
    """A currency amount plus a transaction keyword.

    State-aware handlers use this to tell "a fresh request" from "a reply to
    my question"; a bare number such as ``20`` is a reply.
    """

    lowered = text.lower()
    return has_currency_amount(lowered) and bool(_TXN_KEYWORD_RE.search(lowered))


def explicit_direction_hint(text: str) -> Direction | None:
    """``in``/``out`` for short "mark all as income/expenses" phrasing."""

    if len(text) >= EXPLICIT_HINT_MAX_CHARS:
        return None
    if _HINT_IN_RE.search(text):
        return "in"
    if _HINT_OUT_RE.search(text):
        return "out"
    return None


def is_bulk_data(text: str) -> bool:
    return len(text) > BULK_THRESHOLD_CHARS or len(text.splitlines()) > BULK_THRESHOLD_LINES


def classify_mood(text: str) -> Mood | None:
    stripped = text.strip()
    for mood, pattern in _MOOD_PATTERNS:
        if pattern.search(stripped):
            return mood
    return None
