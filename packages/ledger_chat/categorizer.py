"""Keyword categorizer and transaction-type canonicalization.

Pure functions, no I/O. Rules are evaluated top to bottom; the first rule
whose keywords appear in the lowercased description wins.
"""

from __future__ import annotations

from .models import Direction

UNCATEGORIZED = "Other / Uncategorized"
EXPENSES = "Expenses"

CATEGORIES: tuple[str, ...] = (
    "Salary",
    "Business Income",
    "Investment Income",
    "Crypto Sales",
    "Transfers",
    "Deposits",
    "Refunds",
    "Rent Payments Received",
    "Groceries",
    "Dining Out",
    "Coffee Shops",
    "Transportation",
    "Housing",
    "Utilities",
    "Subscriptions",
    "Entertainment",
    "Shopping",
    "Healthcare",
    "Travel",
    EXPENSES,
    UNCATEGORIZED,
)

_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Salary", ("salary", "payroll", "paycheck", "wages")),
    ("Business Income", ("invoice", "client payment", "consulting", "freelance", "gig")),
    ("Investment Income", ("dividend", "interest earned", "capital gain")),
    ("Crypto Sales", ("coinbase", "crypto", "bitcoin", "ethereum")),
    ("Transfers", ("paypal transfer", "zelle", "venmo", "wire transfer", "transfer")),
    ("Deposits", ("remote online deposit", "atm cash deposit", "mobile deposit", "deposit")),
    ("Refunds", ("refund", "reimbursement", "cashback", "cash back")),
    ("Rent Payments Received", ("rent received", "rent from")),
    ("Groceries", ("grocery", "groceries", "supermarket", "whole foods", "trader joe", "safeway")),
    ("Coffee Shops", ("coffee", "starbucks", "cafe", "latte")),
    ("Dining Out", ("dinner", "lunch", "breakfast", "restaurant", "pizza", "takeout", "bar tab")),
    ("Transportation", ("uber", "lyft", "taxi", "gas station", "fuel", "parking", "metro", "bus")),
    ("Housing", ("rent", "mortgage", "landlord")),
    ("Utilities", ("electric", "water bill", "internet", "phone bill", "utility", "utilities")),
    ("Subscriptions", ("netflix", "spotify", "subscription", "membership")),
    ("Entertainment", ("movie", "cinema", "concert", "tickets", "game")),
    ("Shopping", ("amazon", "clothes", "clothing", "shoes", "target", "walmart")),
    ("Healthcare", ("pharmacy", "doctor", "dentist", "hospital", "clinic")),
    ("Travel", ("flight", "hotel", "airbnb", "airline")),
)

_TYPE_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Card", ("card", "visa", "mastercard", "amex")),
    ("ATM", ("atm",)),
    ("Cash", ("cash",)),
    ("Check", ("check", "cheque")),
    ("Transfer", ("transfer", "zelle", "venmo", "paypal", "wire")),
    ("Deposit", ("deposit",)),
    ("Online", ("online", "web")),
    ("Split", ("split",)),
)


def categorize(description: str, type_: str = "") -> str:
    """Return a category from :data:`CATEGORIES` for ``description``/``type_``.

    Card payments without a more specific keyword fall into ``Expenses``;
    everything unrecognized is ``Other / Uncategorized``.
    """

    text = (description or "").lower()
    for category, keywords in _RULES:
        if any(k in text for k in keywords):
            return category
    if (type_ or "").strip().lower() == "card" or "cash redemption" in text:
        return EXPENSES
    return UNCATEGORIZED


def categorize_for_direction(description: str, type_: str, direction: Direction) -> str:
    """Categorize, then reconcile the bucket with ``direction``.

    An outgoing record never lands in the uncategorized income-neutral bucket,
    and an incoming one never lands in ``Expenses``.
    """

    category = categorize(description, type_)
    if direction == "out" and category == UNCATEGORIZED:
        return EXPENSES
    if direction == "in" and category == EXPENSES:
        return UNCATEGORIZED
    return category


def canonical_type(raw: str | None) -> str:
    """Map free-text payment types onto a small recognized set by substring."""

    if not raw or not raw.strip():
        return "unknown"
    lowered = raw.strip().lower()
    for canonical, needles in _TYPE_RULES:
        if any(n in lowered for n in needles):
            return canonical
    return raw.strip()
