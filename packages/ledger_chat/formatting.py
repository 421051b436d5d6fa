"""Small text helpers for assistant replies."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from .models import Direction, Transaction

_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "INR": "₹", "CAD": "CA$", "AUD": "A$"}


def format_currency(amount: float | str | None, currency: str = "USD") -> str:
    """``$1,234.50`` style rendering; unknown codes render as ``CHF 12.00``."""

    if isinstance(amount, str):
        try:
            num = float(amount.replace("$", "").replace(",", ""))
        except ValueError:
            return f"{currency} ???"
    else:
        num = float(amount or 0.0)
    code = (currency or "USD").upper()
    symbol = _SYMBOLS.get(code)
    if symbol is None:
        return f"{code} {num:,.2f}"
    decimals = 0 if code == "JPY" else 2
    return f"{'-' if num < 0 else ''}{symbol}{abs(num):,.{decimals}f}"


def direction_label(direction: Direction) -> str:
    return "income/deposits" if direction == "in" else "expenses/payments"


def category_breakdown(transactions: Iterable[Transaction]) -> str:
    """One ``- Category: N`` line per category, most frequent first."""

    counts = Counter(t.category for t in transactions)
    return "\n".join(f"- {cat}: {n}" for cat, n in counts.most_common())


def describe(tx: Transaction) -> str:
    return f'"{tx.description}" ({format_currency(tx.amount, tx.currency)} on {tx.date})'
