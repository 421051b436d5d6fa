"""Semantic identity for transactions, independent of ``id``.

Two records describing the same fact (same date, description, amount,
currency and direction) share a fingerprint even when they came from
different extraction batches.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .models import Transaction


def _to_decimal_2(raw: Any) -> Decimal | None:
    if raw is None:
        return None
    try:
        d = Decimal(str(raw).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return None
    return abs(d).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _norm_description(v: Any) -> str:
    if v is None:
        return ""
    # Case and internal whitespace do not distinguish two purchases.
    return " ".join(str(v).split()).lower()


def _norm_code(v: Any, default: str) -> str:
    s = str(v).strip() if v is not None else ""
    return s or default


def compute_fingerprint(tx: Transaction | Mapping[str, Any], *, base_currency: str = "USD") -> str:
    """Return a stable SHA-256 fingerprint over the semantic fields.

    Fields used: date (as stored), description (lowercased, whitespace
    collapsed), amount (2dp string), currency (uppercased, defaulting to
    ``base_currency``) and direction (lowercased).
    """

    data = tx.model_dump() if isinstance(tx, Transaction) else dict(tx)
    amt = _to_decimal_2(data.get("amount"))
    payload = {
        "date": _norm_code(data.get("date"), "unknown"),
        "description": _norm_description(data.get("description")),
        "amount": f"{amt:.2f}" if amt is not None else None,
        "currency": _norm_code(data.get("currency"), base_currency).upper(),
        "direction": _norm_code(data.get("direction"), "unknown").lower(),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def split_new_and_duplicates(
    candidates: Iterable[Transaction],
    existing: Iterable[Transaction],
) -> tuple[list[Transaction], list[Transaction]]:
    """Partition ``candidates`` into ``(new, duplicates)`` against ``existing``.

    Candidates that repeat an earlier candidate in the same iterable count as
    duplicates too, so the "new" list never carries two records with one
    fingerprint.
    """

    seen = {compute_fingerprint(t) for t in existing}
    new: list[Transaction] = []
    dups: list[Transaction] = []
    for tx in candidates:
        fp = compute_fingerprint(tx)
        if fp in seen:
            dups.append(tx)
            continue
        seen.add(fp)
        new.append(tx)
    return new, dups
