"""Small talk answered from a static table; never touches transactions."""

from __future__ import annotations

from collections.abc import Callable

from ..intents import Mood, classify_mood, looks_like_transaction
from ..models import NOT_HANDLED, Handled, HandlerResult
from .base import Handler, HandlerContext

RESPONSES: dict[Mood, str] = {
    "greeting": "Hello there! How can I help you with your transactions today?",
    "thanks": "You're welcome!",
    "affirmation": "Okay.",
    "capability": (
        "I can extract transactions from what you tell me, e.g. 'Spent $12 on lunch "
        "yesterday' or a pasted bank statement, split shared bills, fix mistakes "
        "('actually it was $15') and mark batches as income or expenses."
    ),
}


def mood_handler(
    *,
    priority: int = 100,
    detect: Callable[[str], Mood | None] = classify_mood,
) -> Handler:
    def _applies(ctx: HandlerContext) -> bool:
        return detect(ctx.message) is not None and not looks_like_transaction(ctx.message)

    def _run(ctx: HandlerContext) -> HandlerResult:
        mood = detect(ctx.message)
        if mood is None:
            return NOT_HANDLED
        return Handled(response=RESPONSES[mood])

    return Handler(name="mood", priority=priority, applies=_applies, run=_run)
