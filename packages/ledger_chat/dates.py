"""Calendar resolver: free-text date phrases to ISO ``YYYY-MM-DD``.

Deterministic for a given reference date. Anything that cannot be resolved
(including empty input and the literal ``"unknown"``) resolves to the
reference date itself, so persisted records always carry a concrete date.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

from dateutil import parser as date_parser
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

WEEKDAY_MAP = {
    "monday": MO,
    "mon": MO,
    "tuesday": TU,
    "tue": TU,
    "tues": TU,
    "wednesday": WE,
    "wed": WE,
    "thursday": TH,
    "thu": TH,
    "thur": TH,
    "thurs": TH,
    "friday": FR,
    "fri": FR,
    "saturday": SA,
    "sat": SA,
    "sunday": SU,
    "sun": SU,
}

_WEEKDAY_ALT = "|".join(sorted(WEEKDAY_MAP, key=len, reverse=True))
_ISO_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_US_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})\b")
_AGO_RE = re.compile(r"\b(\d+|a|an|one|two|three)\s+(days?|weeks?|months?)\s+ago\b")
_LAST_WEEKDAY_RE = re.compile(rf"\b(?:last|past|previous)\s+({_WEEKDAY_ALT})\b")
_BARE_WEEKDAY_RE = re.compile(
    r"\b(?:on\s+)?(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b"
)
_MONTH_NAME_RE = re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\b")
_MONTHS = (
    r"(?:january|february|march|april|may|june|july|august|september|october|november|december"
    r"|jan|feb|mar|apr|jun|jul|aug|sept|sep|oct|nov|dec)\.?"
)
_MONTH_DAY_RE = re.compile(
    rf"\b{_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?\b"
    rf"|\b\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTHS}(?!\w)"
    r"|\bthe\s+\d{1,2}(?:st|nd|rd|th)\b"
)
_RELATIVE_RE = re.compile(
    r"\b(?:yesterday|today|tonight|this morning|tomorrow|last week|last month)\b"
)

_WORD_COUNTS = {"a": 1, "an": 1, "one": 1, "two": 2, "three": 3}


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _plausible(d: date, reference: date) -> bool:
    return 1900 <= d.year <= reference.year + 1


def _resolve(text: str, reference: date) -> date | None:
    lowered = text.lower()

    m = _ISO_RE.search(lowered)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _US_RE.search(lowered)
    if m:
        year = int(m.group(3))
        if year < 100:
            year += 2000
        return _safe_date(year, int(m.group(1)), int(m.group(2)))

    if re.search(r"\bday before yesterday\b", lowered):
        return reference - timedelta(days=2)
    if re.search(r"\byesterday\b", lowered):
        return reference - timedelta(days=1)
    if re.search(r"\btoday\b|\btonight\b|\bthis morning\b", lowered):
        return reference
    if re.search(r"\btomorrow\b", lowered):
        return reference + timedelta(days=1)

    m = _AGO_RE.search(lowered)
    if m:
        raw_n = m.group(1)
        n = int(raw_n) if raw_n.isdigit() else _WORD_COUNTS[raw_n]
        unit = m.group(2)
        if unit.startswith("day"):
            return reference - timedelta(days=n)
        if unit.startswith("week"):
            return reference - timedelta(weeks=n)
        return reference - relativedelta(months=n)

    if re.search(r"\blast week\b", lowered):
        return reference - timedelta(weeks=1)
    if re.search(r"\blast month\b", lowered):
        return reference - relativedelta(months=1)

    m = _LAST_WEEKDAY_RE.search(lowered)
    if m:
        # Strictly before the reference day.
        return reference - timedelta(days=1) + relativedelta(weekday=WEEKDAY_MAP[m.group(1)](-1))

    m = _BARE_WEEKDAY_RE.search(lowered)
    if m:
        # Most recent such day, the reference day included.
        return reference + relativedelta(weekday=WEEKDAY_MAP[m.group(1)](-1))

    if _MONTH_NAME_RE.search(lowered) or re.search(r"\d", lowered):
        try:
            parsed = date_parser.parse(
                text, fuzzy=True, default=datetime.combine(reference, time())
            )
        except (ValueError, OverflowError):
            return None
        return parsed.date()

    return None


def has_date_phrase(text: str) -> bool:
    """True when ``text`` names a day: a calendar date, a relative phrase or a weekday.

    Bare numbers ("with 3 friends", "4 ways") do not count.
    """

    lowered = text.lower()
    return any(
        rx.search(lowered)
        for rx in (
            _ISO_RE,
            _US_RE,
            _RELATIVE_RE,
            _AGO_RE,
            _LAST_WEEKDAY_RE,
            _BARE_WEEKDAY_RE,
            _MONTH_DAY_RE,
        )
    )


def resolve_date(text: str | None, reference_date: date) -> str:
    """Resolve ``text`` against ``reference_date`` and return ``YYYY-MM-DD``.

    Supports ISO and ``MM/DD/YYYY`` dates, ``today``/``yesterday``/
    ``tomorrow``, ``N days|weeks|months ago``, ``last week|month``,
    ``last <weekday>``, bare weekday names and anything ``dateutil`` can read
    fuzzily. Unresolvable input returns the reference date.
    """

    if not isinstance(text, str):
        return reference_date.isoformat()
    stripped = text.strip()
    if not stripped or stripped.lower() == "unknown":
        return reference_date.isoformat()

    resolved = _resolve(stripped, reference_date)
    if resolved is None or not _plausible(resolved, reference_date):
        return reference_date.isoformat()
    return resolved.isoformat()
