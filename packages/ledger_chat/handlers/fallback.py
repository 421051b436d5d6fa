"""Default conversational responder for anything no other handler claimed."""

from __future__ import annotations

from .. import prompting
from ..llm import LLMApiError, fallback_response
from ..logging_setup import get_logger
from ..models import ChatMessage, Handled, HandlerResult
from .base import Handler, HandlerContext

_logger = get_logger("ledger_chat.handlers.fallback")

CHAT_TEMPERATURE = 0.7


def _run(ctx: HandlerContext) -> HandlerResult:
    history = ctx.status.history(prompting.HISTORY_WINDOW)
    if not history or history[-1].role != "user" or history[-1].content != ctx.message:
        history = [*history, ChatMessage("user", ctx.message)]
    messages = [ChatMessage("system", prompting.build_system_prompt(ctx.today)), *history]
    try:
        reply = ctx.llm.chat(messages, temperature=CHAT_TEMPERATURE)
    except LLMApiError as e:
        _logger.warning("fallback:chat_failed status=%s error=%s", e.status, e.message)
        return Handled(response=fallback_response(e))
    return Handled(response=reply or fallback_response())


def normal_response_handler() -> Handler:
    return Handler(name="normal_response", priority=999, applies=lambda _ctx: True, run=_run)
