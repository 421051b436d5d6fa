"""Prompt builders for extraction, chunking, corrections and chat.

All builders are pure string functions; callers wrap them into chat messages
with :func:`system_and_user`.
"""

from __future__ import annotations

import json
from collections.abc import Sequence

from .categorizer import CATEGORIES
from .models import ChatMessage, Transaction

MAX_CHUNK_PROMPT_CHARS = 15_000
HISTORY_WINDOW = 8

TRANSACTION_FIELDS: tuple[str, ...] = (
    "date",
    "description",
    "details",
    "type",
    "amount",
    "currency",
    "direction",
    "needs_clarification",
)


def build_system_prompt(today: str) -> str:
    """Persona and house rules shared by every request."""

    return (
        "You are a friendly, attentive financial assistant. Your job is to extract and "
        "organize transactions (date, description, amount, currency, type, direction in/out) "
        "from what the user tells you, asking short clarifying questions when something "
        f"essential is missing.\nToday's date is {today}.\n"
        "Rules:\n"
        "- Extract every transaction in a message, not just the first.\n"
        "- Use what money actually did: 'expecting a refund' is not income yet.\n"
        "- Never convert currencies. Default to USD only when no currency is given.\n"
        "- If the user split a bill but did not say what they paid, do not invent a share; "
        "ask for it.\n"
        "- Keep answers brief and friendly."
    )


def build_extraction_prompt(text: str, today: str) -> str:
    """Ask for ``{"transactions": [...]}`` describing ``text``."""

    fields = ", ".join(TRANSACTION_FIELDS)
    return (
        "Extract all financial transactions from the user's input below.\n"
        f"Today is {today}. Resolve relative dates ('yesterday', 'last Friday') to "
        "YYYY-MM-DD. If no date can be determined output \"unknown\".\n"
        "Respond with JSON only, shaped exactly as "
        '{"transactions": [{...}, ...]} with these fields per transaction: '
        f"{fields}.\n"
        "- description: what it was for, in Title Case.\n"
        "- details: extra context from the user, or \"\".\n"
        "- amount: a positive number without symbols.\n"
        "- currency: ISO 4217 code (e.g. USD, EUR, JPY).\n"
        "- direction: \"in\" for money received, \"out\" for money spent, "
        "\"unknown\" only if genuinely unclear.\n"
        "- needs_clarification: null, or a short question when an essential detail "
        "is missing.\n"
        "If there are no transactions, respond with {\"transactions\": []}.\n\n"
        f'User input:\n"""\n{text}\n"""'
    )


def build_count_correction_text(original: str, hint: str) -> str:
    """Combine the original message with a "you missed one" hint for re-analysis."""

    return (
        f'Original user input:\n"""\n{original}\n"""\n'
        f'Correction / Hint about transaction count:\n"""\n{hint}\n"""\n'
        "Please re-analyze the ORIGINAL user input based on the correction/hint provided "
        "and extract ALL relevant transactions accurately according to the number "
        "mentioned in the correction hint."
    )


def build_chunking_prompt(text: str) -> str:
    """Ask the model to split a large paste into one string per transaction."""

    if len(text) > MAX_CHUNK_PROMPT_CHARS:
        text = text[:MAX_CHUNK_PROMPT_CHARS] + "\n... (truncated)"
    return (
        "Split the following text into chunks so that each chunk holds the complete "
        "information for exactly one financial transaction. Copy the text of each chunk "
        "verbatim; do not summarize or invent anything.\n"
        'Respond with JSON only: {"transaction_chunks": ["chunk one", "chunk two"]}. '
        "Your response MUST begin immediately with the opening brace '{'.\n\n"
        f'Text:\n"""\n{text}\n"""'
    )


def build_split_description_prompt(message: str) -> str:
    return (
        "The user is describing a bill they shared with others. In two to four words, "
        "what was the shared item or occasion? Respond with JSON only: "
        '{"description": "..."}\n\n'
        f'Message:\n"""\n{message}\n"""'
    )


def build_correction_prompt(message: str, target: Transaction) -> str:
    """Ask which fields of ``target`` the user's correction changes."""

    current = {
        "date": target.date,
        "description": target.description,
        "amount": target.amount,
        "currency": target.currency,
        "direction": target.direction,
        "category": target.category,
    }
    return (
        "The user wants to correct a recorded transaction.\n"
        f"Current transaction: {json.dumps(current, ensure_ascii=False)}\n"
        f'User message: """{message}"""\n'
        "Respond with JSON only: "
        '{"correction_possible": true|false, "field_updates": {"<field>": <new value>}}. '
        "Allowed fields: date (YYYY-MM-DD), description, amount (positive number), "
        f"currency, direction (in|out), category (one of: {', '.join(CATEGORIES)})."
    )


def build_summary_prompt(transactions: Sequence[Transaction]) -> str:
    lines = [
        f"- {t.date} | {t.description} | {t.direction} | {t.amount:.2f} {t.currency} | {t.category}"
        for t in transactions
    ]
    return (
        "Summarize these recorded transactions for the user in a few sentences: totals in "
        "and out, the biggest categories, and anything notable.\n" + "\n".join(lines)
    )


def system_and_user(system: str, user: str) -> list[ChatMessage]:
    return [ChatMessage("system", system), ChatMessage("user", user)]
