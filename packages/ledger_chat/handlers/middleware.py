"""Middleware wrapped around the whole handler chain.

Each middleware is ``(ctx, next) -> HandlerResult``. The default stack, from
outermost to innermost, is: error logging, request logging, timing, context
enrichment, transaction auto-add.
"""

from __future__ import annotations

import dataclasses
import time

from ..intents import explicit_direction_hint
from ..logging_setup import get_logger
from ..models import Handled, HandlerResult
from .base import HandlerContext
from .registry import Middleware, Next

_logger = get_logger("ledger_chat.handlers.middleware")

_PREVIEW_CHARS = 500


def _preview(text: str | None) -> str:
    if text is None:
        return ""
    text = text.replace("\n", " ")
    return text if len(text) <= _PREVIEW_CHARS else text[:_PREVIEW_CHARS] + "..."


def error_logging_middleware(ctx: HandlerContext, nxt: Next) -> HandlerResult:
    """Log any handler exception with context, then re-raise it unchanged."""

    try:
        return nxt(ctx)
    except Exception as e:
        _logger.error(
            "chain:error message=%r error=%s detail=%s",
            _preview(ctx.message),
            e.__class__.__name__,
            e,
        )
        raise


def logging_middleware(ctx: HandlerContext, nxt: Next) -> HandlerResult:
    _logger.info("chain:message text=%r", _preview(ctx.message))
    result = nxt(ctx)
    if isinstance(result, Handled):
        _logger.info(
            "chain:result handled=True response=%r transactions=%d",
            _preview(result.response),
            len(result.transactions),
        )
    else:
        _logger.info("chain:result handled=False")
    return result


def timing_middleware(ctx: HandlerContext, nxt: Next) -> HandlerResult:
    t0 = time.perf_counter()
    try:
        return nxt(ctx)
    finally:
        _logger.info("chain:timing latency_ms=%.2f", (time.perf_counter() - t0) * 1000.0)


def context_enrichment_middleware(ctx: HandlerContext, nxt: Next) -> HandlerResult:
    """Derive the explicit direction hint when the caller did not supply one."""

    if ctx.explicit_direction is None:
        hint = explicit_direction_hint(ctx.message)
        if hint is not None:
            ctx = dataclasses.replace(ctx, explicit_direction=hint)
    return nxt(ctx)


def transaction_auto_add_middleware(ctx: HandlerContext, nxt: Next) -> HandlerResult:
    """Merge returned transactions into the sink and fold a short confirmation on."""

    result = nxt(ctx)
    if not isinstance(result, Handled) or not result.transactions:
        return result
    inserted = ctx.sink.add(result.transactions)
    _logger.info(
        "chain:auto_add returned=%d inserted=%d", len(result.transactions), inserted
    )
    if not result.announce or inserted == 0:
        return result
    suffix = f"Added {inserted} transaction(s)."
    response = f"{result.response} {suffix}" if result.response else suffix
    return dataclasses.replace(result, response=response)


DEFAULT_MIDDLEWARE: tuple[Middleware, ...] = (
    error_logging_middleware,
    logging_middleware,
    timing_middleware,
    context_enrichment_middleware,
    transaction_auto_add_middleware,
)
