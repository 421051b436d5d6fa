"""Multi-pass recovery parser for language-model transaction output.

Public API:
    - :func:`parse` turns raw model text into validated :class:`Transaction`
      records and never raises.
    - :func:`repair_json` applies the syntax-repair pass on its own.
    - :func:`load_json_lenient` decodes arbitrary JSON with the same whole,
      sliced and repaired attempts (used for non-transaction payloads such as
      chunk lists and correction objects).

Recovery passes, stopping at the first that yields a structurally valid
candidate list (a JSON array, or an object with a ``transactions`` array):

1. the whole string;
2. the outermost ``{...}`` / ``[...]`` slice;
3. both of the above after :func:`repair_json`;
4. the ``"transactions": [...]`` slice of the repaired text;
5. every flat ``{...}`` fragment mentioning two of date/description/amount.

Each candidate is then coerced field by field (see :func:`_coerce`). Records
that end up with ``amount <= 0`` are dropped, never surfaced.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any, NamedTuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .categorizer import canonical_type, categorize_for_direction
from .dates import resolve_date
from .logging_setup import get_logger
from .models import UNKNOWN, Direction, Transaction

_logger = get_logger("ledger_chat.parser")

_CURRENCY_SYMBOLS: dict[str, str] = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY", "₹": "INR"}
_IDENTIFYING_KEYS = ("date", "description", "amount")

_IN_KEYWORDS = ("payment from", "credit", "deposit", "received", "income", "refund", "salary", "paycheck")
_OUT_KEYWORDS = ("debit", "payment", "purchase", "withdrawal", "charge", "bought", "spent", "paid")
_IN_LITERALS = {"in", "income", "incoming", "credit", "deposit"}
_OUT_LITERALS = {"out", "outgoing", "expense", "debit", "spend", "spending"}


# ---- Syntax repair -----------------------------------------------------------


def _split_strings(text: str) -> list[tuple[bool, str]]:
    """Split ``text`` into ``(is_string_literal, chunk)`` pieces.

    Only double-quoted literals are recognized; backslash escapes are honored.
    An unterminated literal runs to the end of the text.
    """

    parts: list[tuple[bool, str]] = []
    n = len(text)
    start = 0
    i = 0
    while i < n:
        if text[i] != '"':
            i += 1
            continue
        if i > start:
            parts.append((False, text[start:i]))
        j = i + 1
        while j < n:
            if text[j] == "\\":
                j += 2
                continue
            if text[j] == '"':
                break
            j += 1
        parts.append((True, text[i : j + 1]))
        i = j + 1
        start = i
    if start < n:
        parts.append((False, text[start:]))
    return parts


def _convert_single_quotes(text: str) -> str:
    """Rewrite ``'single quoted'`` literals outside double-quoted strings."""

    out: list[str] = []
    n = len(text)
    i = 0
    in_double = False
    while i < n:
        ch = text[i]
        if in_double:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_double = False
            i += 1
            continue
        if ch == '"':
            in_double = True
            out.append(ch)
            i += 1
            continue
        if ch == "'":
            j = i + 1
            while j < n and text[j] != "'":
                j += 2 if text[j] == "\\" else 1
            if j >= n:
                # Unmatched apostrophe: leave it alone.
                out.append(ch)
                i += 1
                continue
            inner = text[i + 1 : j].replace("\\'", "'").replace('"', '\\"')
            out.append(f'"{inner}"')
            i = j + 1
            continue
        out.append(ch)
        i += 1
    return "".join(out)


_FENCE_RE = re.compile(r"```(?:json|JSON)?")
_LINE_COMMENT_RE = re.compile(r"(^|[\s,{\[])//[^\n]*", re.MULTILINE)
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_HASH_COMMENT_RE = re.compile(r"(^|\s)#[^\n]*", re.MULTILINE)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_BARE_VALUE_RE = re.compile(r"(:\s*)([A-Za-z_][A-Za-z_ ]*?)(\s*[,}\]])")
_TRAILING_COMMA_RE = re.compile(r",\s*([\]}])")
_JSON_LITERALS = {"true", "false", "null"}


def _repair_outside_strings(chunk: str) -> str:
    chunk = _BLOCK_COMMENT_RE.sub("", chunk)
    chunk = _LINE_COMMENT_RE.sub(r"\1", chunk)
    chunk = _HASH_COMMENT_RE.sub(r"\1", chunk)
    chunk = re.sub(r"\bNone\b|\bundefined\b|\bNaN\b", "null", chunk)
    chunk = re.sub(r"\bTrue\b", "true", chunk)
    chunk = re.sub(r"\bFalse\b", "false", chunk)
    chunk = _BARE_KEY_RE.sub(r'\1"\2"\3', chunk)

    def _quote_value(m: re.Match[str]) -> str:
        word = m.group(2).strip()
        if word in _JSON_LITERALS:
            return m.group(0)
        return f'{m.group(1)}"{word}"{m.group(3)}'

    chunk = _BARE_VALUE_RE.sub(_quote_value, chunk)
    prev = None
    while prev != chunk:
        prev = chunk
        chunk = _TRAILING_COMMA_RE.sub(r"\1", chunk)
    return chunk


def repair_json(text: str) -> str:
    """Best-effort fix-ups that turn near-JSON into JSON.

    Strips code fences, stray backticks, comments and control characters;
    translates Python literals; converts single-quoted strings; quotes bare
    keys and bare word values; removes trailing commas. Text inside
    double-quoted strings is left untouched.
    """

    if not text:
        return ""
    fixed = text.replace("\ufeff", "")
    fixed = _FENCE_RE.sub("", fixed).strip().strip("`").strip()
    fixed = _CONTROL_RE.sub("", fixed)
    fixed = _convert_single_quotes(fixed)
    pieces = [
        chunk if is_str else _repair_outside_strings(chunk)
        for is_str, chunk in _split_strings(fixed)
    ]
    return "".join(pieces)


# ---- Decoding passes ---------------------------------------------------------


def _try_load(text: str) -> Any | None:
    try:
        return json.loads(text, strict=False)
    except (ValueError, RecursionError):
        return None


def _outer_slices(text: str) -> list[str]:
    """Return ``{...}``/``[...]`` slices, earliest opening delimiter first."""

    spans: list[tuple[int, str]] = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            spans.append((start, text[start : end + 1]))
    spans.sort(key=lambda s: s[0])
    return [s for _, s in spans]


def _matching_close(text: str, open_pos: int) -> int:
    """Index of the bracket closing ``text[open_pos]``, string-aware; -1 if none."""

    opener = text[open_pos]
    closer = "]" if opener == "[" else "}"
    depth = 0
    in_str = False
    i = open_pos
    while i < len(text):
        ch = text[i]
        if in_str:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                in_str = False
        elif ch == '"':
            in_str = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _candidate_list(obj: Any) -> list[Mapping[str, Any]] | None:
    """Return the candidate objects if ``obj`` has a recognized shape."""

    if isinstance(obj, Mapping):
        for key, val in obj.items():
            if isinstance(key, str) and key.lower() == "transactions" and isinstance(val, list):
                obj = val
                break
        else:
            return None
    if not isinstance(obj, list):
        return None
    items = [x for x in obj if isinstance(x, Mapping)]
    if obj and not items:
        return None
    return items


def _decode_whole_or_sliced(text: str) -> list[Mapping[str, Any]] | None:
    found = _candidate_list(_try_load(text))
    if found is not None:
        return found
    for piece in _outer_slices(text):
        found = _candidate_list(_try_load(piece))
        if found is not None:
            return found
    return None


_TRANSACTIONS_KEY_RE = re.compile(r'"transactions"\s*:\s*\[', re.IGNORECASE)
_FLAT_OBJECT_RE = re.compile(r"\{[^{}]*\}")


def _transactions_slice(repaired: str) -> list[Mapping[str, Any]] | None:
    m = _TRANSACTIONS_KEY_RE.search(repaired)
    if not m:
        return None
    open_pos = m.end() - 1
    end = _matching_close(repaired, open_pos)
    if end == -1:
        end = repaired.rfind("]")
    if end <= open_pos:
        return None
    array_text = repaired[open_pos : end + 1]
    loaded = _try_load(array_text)
    if loaded is None:
        loaded = _try_load(repair_json(array_text))
    return _candidate_list(loaded)


def _fragments(repaired: str) -> list[Mapping[str, Any]]:
    found: list[Mapping[str, Any]] = []
    for m in _FLAT_OBJECT_RE.finditer(repaired):
        fragment = m.group(0)
        lowered = fragment.lower()
        if sum(1 for k in _IDENTIFYING_KEYS if k in lowered) < 2:
            continue
        obj = _try_load(fragment)
        if obj is None:
            obj = _try_load(repair_json(fragment))
        if isinstance(obj, Mapping):
            found.append(obj)
    return found


_PASSES: tuple[tuple[str, Callable[[str, str], list[Mapping[str, Any]] | None]], ...] = (
    ("whole_or_slice", lambda raw, _rep: _decode_whole_or_sliced(raw)),
    ("repaired", lambda _raw, rep: _decode_whole_or_sliced(rep)),
    ("transactions_slice", lambda _raw, rep: _transactions_slice(rep)),
    ("fragments", lambda _raw, rep: _fragments(rep) or None),
)


def _recover_candidates(raw_text: str) -> tuple[str, list[Mapping[str, Any]]]:
    repaired = repair_json(raw_text)
    for name, attempt in _PASSES:
        found = attempt(raw_text, repaired)
        if found is not None:
            return name, found
    return "none", []


def load_json_lenient(text: str) -> Any | None:
    """Decode any JSON value using the whole/slice/repair attempts.

    Returns ``None`` when nothing decodes.
    """

    if not text or not text.strip():
        return None
    for candidate in (text, repair_json(text)):
        loaded = _try_load(candidate)
        if loaded is not None:
            return loaded
        for piece in _outer_slices(candidate):
            loaded = _try_load(piece)
            if loaded is not None:
                return loaded
    return None


# ---- Field coercion ----------------------------------------------------------


def _to_amount(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return abs(float(raw))
    s = re.sub(r"[^\d.\-]", "", str(raw))
    if not s or s in {"-", ".", "-."}:
        return None
    try:
        return abs(float(s))
    except ValueError:
        return None


class _Candidate(BaseModel):
    """Loose view of one model-produced object before coercion."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    date: str | None = None
    description: str | None = Field(
        default=None, validation_alias=AliasChoices("description", "desc", "merchant", "payee")
    )
    notes: str | None = Field(default=None, validation_alias=AliasChoices("notes", "details"))
    type: str | None = None
    amount: float | None = None
    currency: str | None = None
    direction: str | None = None
    needs_clarification: str | None = None

    @field_validator("date", "description", "notes", "type", "currency", "direction", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str | None:
        if v is None or isinstance(v, (Mapping, list)):
            return None
        text = str(v).strip()
        return text or None

    @field_validator("amount", mode="before")
    @classmethod
    def _as_amount(cls, v: Any) -> float | None:
        return _to_amount(v)

    @field_validator("needs_clarification", mode="before")
    @classmethod
    def _as_question(cls, v: Any) -> str | None:
        if v is True:
            return "Could you clarify the details of this transaction?"
        if v is None or v is False or isinstance(v, (Mapping, list)):
            return None
        text = str(v).strip()
        return text if text and text.lower() not in {"false", "null", "none"} else None


def _resolve_direction(raw: str | None, description: str, type_: str) -> tuple[Direction, bool]:
    """Return ``(direction, defaulted)``; ``defaulted`` when nothing decided it."""

    if raw:
        lowered = raw.lower()
        if lowered in _IN_LITERALS:
            return "in", False
        if lowered in _OUT_LITERALS:
            return "out", False
    combined = f"{description} {type_}".lower()
    if any(k in combined for k in _IN_KEYWORDS):
        return "in", False
    if any(k in combined for k in _OUT_KEYWORDS) or type_.lower() in {"card", "atm"}:
        return "out", False
    # Undetermined direction defaults to an expense.
    return "out", True


def _resolve_currency(raw_currency: str | None, raw_amount: Any, base_currency: str) -> str:
    if raw_currency:
        if raw_currency in _CURRENCY_SYMBOLS:
            return _CURRENCY_SYMBOLS[raw_currency]
        code = re.sub(r"[^A-Za-z]", "", raw_currency).upper()
        if len(code) == 3:
            return code
    if isinstance(raw_amount, str):
        for symbol, code in _CURRENCY_SYMBOLS.items():
            if symbol in raw_amount:
                return code
    return base_currency


def _coerce(
    raw: Mapping[str, Any],
    *,
    position: int,
    batch_id: str,
    base_ts: int,
    reference_date: date,
    base_currency: str,
) -> tuple[Transaction, bool] | None:
    try:
        cand = _Candidate.model_validate(dict(raw))
    except ValidationError as e:
        _logger.debug("parser:candidate_invalid position=%d errors=%d", position, e.error_count())
        return None

    amount_supplied = raw.get("amount") not in (None, "")
    if amount_supplied and (cand.amount is None or cand.amount <= 0):
        return None
    amount = cand.amount or 0.0

    description = cand.description or UNKNOWN
    # A date filled in from the reference date does not identify anything.
    if description == UNKNOWN and (cand.date is None or cand.date.lower() == UNKNOWN):
        return None
    type_ = canonical_type(cand.type)
    direction, defaulted = _resolve_direction(cand.direction, description, type_)
    try:
        tx = Transaction(
            id=f"{batch_id}:{base_ts + position}",
            batch_id=batch_id,
            date=resolve_date(cand.date, reference_date),
            description=description,
            type=type_,
            notes=cand.notes or "",
            amount=amount,
            currency=_resolve_currency(cand.currency, raw.get("amount"), base_currency),
            direction=direction,
            category=categorize_for_direction(description, type_, direction),
            needs_clarification=cand.needs_clarification,
        )
    except ValidationError:
        return None
    return (tx, defaulted) if tx.is_final else None


# ---- Public entrypoints ------------------------------------------------------


class ParseReport(NamedTuple):
    transactions: list[Transaction]
    strategy: str
    candidates: int
    # Ids whose direction fell back to "out" because nothing indicated one.
    defaulted_direction_ids: tuple[str, ...] = ()


def parse_report(
    raw_text: str | None,
    batch_id: str,
    reference_date: date | None = None,
    *,
    base_ts: int | None = None,
    base_currency: str = "USD",
) -> ParseReport:
    """Like :func:`parse`, also reporting the winning pass and defaulted directions."""

    if not isinstance(raw_text, str) or not raw_text.strip():
        return ParseReport(transactions=[], strategy="empty", candidates=0)
    ref = reference_date or date.today()
    ts = base_ts if base_ts is not None else int(time.time() * 1000)
    try:
        strategy, candidates = _recover_candidates(raw_text)
        out: list[Transaction] = []
        defaulted: list[str] = []
        for position, raw in enumerate(candidates):
            coerced = _coerce(
                raw,
                position=position,
                batch_id=batch_id,
                base_ts=ts,
                reference_date=ref,
                base_currency=base_currency,
            )
            if coerced is None:
                continue
            tx, was_defaulted = coerced
            out.append(tx)
            if was_defaulted:
                defaulted.append(tx.id)
    except Exception as e:  # noqa: BLE001 - parsing is total by contract
        _logger.error("parser:failed batch_id=%s error=%s", batch_id, e.__class__.__name__)
        return ParseReport(transactions=[], strategy="error", candidates=0)
    _logger.info(
        "parser:done batch_id=%s strategy=%s candidates=%d valid=%d",
        batch_id,
        strategy,
        len(candidates),
        len(out),
    )
    return ParseReport(
        transactions=out,
        strategy=strategy,
        candidates=len(candidates),
        defaulted_direction_ids=tuple(defaulted),
    )


def parse(
    raw_text: str | None,
    batch_id: str,
    reference_date: date | None = None,
    *,
    base_ts: int | None = None,
    base_currency: str = "USD",
) -> list[Transaction]:
    """Decode ``raw_text`` into validated transactions; never raises.

    ``reference_date`` anchors relative and missing dates (today by default).
    ``base_ts`` is the per-batch id base (milliseconds since the epoch unless
    given); ids are ``"<batch_id>:<base_ts + position>"`` so the Nth candidate
    always maps to the Nth id.
    """

    return parse_report(
        raw_text, batch_id, reference_date, base_ts=base_ts, base_currency=base_currency
    ).transactions
