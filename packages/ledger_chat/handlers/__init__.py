"""Message handlers and the default dispatch chain.

Priorities (lower runs first):

====  ==========================  ===========
  10  direction_clarification     state-aware
  20  split_share_response        state-aware
  30  duplicate_confirmation      state-aware
  35  correction_clarification    state-aware
  40  count_correction            memo
  50  bulk_direction_correction
  60  fill_details
  70  correction
  80  split_bill_detection
  85  bulk_data                   extracts
  88  initial_data                extracts
  90  extraction                  extracts
 100  mood
 999  normal_response             fallback
====  ==========================  ===========
"""

from __future__ import annotations

from collections.abc import Iterable

from .base import Handler, HandlerContext, conditional_handler, state_aware_handler
from .correction import correction_clarification_handler, correction_handler
from .count_correction import count_correction_handler
from .direction import bulk_direction_correction_handler, direction_clarification_handler
from .duplicates import duplicate_confirmation_handler
from .extract import bulk_data_handler, extraction_handler, initial_data_handler
from .fallback import normal_response_handler
from .fill_details import fill_details_handler
from .middleware import DEFAULT_MIDDLEWARE
from .mood import mood_handler
from .registry import HandlerChain, Middleware
from .split_bill import split_bill_detection_handler, split_share_response_handler


def default_handlers() -> list[Handler]:
    return [
        direction_clarification_handler(),
        split_share_response_handler(),
        duplicate_confirmation_handler(),
        correction_clarification_handler(),
        count_correction_handler(),
        bulk_direction_correction_handler(),
        fill_details_handler(),
        correction_handler(),
        split_bill_detection_handler(),
        bulk_data_handler(),
        initial_data_handler(),
        extraction_handler(),
        mood_handler(),
    ]


def build_default_chain(
    handlers: Iterable[Handler] | None = None,
    *,
    middleware: Iterable[Middleware] = DEFAULT_MIDDLEWARE,
) -> HandlerChain:
    return HandlerChain(
        default_handlers() if handlers is None else handlers,
        fallback=normal_response_handler(),
        middleware=middleware,
    )


__all__ = [
    "Handler",
    "HandlerChain",
    "HandlerContext",
    "build_default_chain",
    "conditional_handler",
    "default_handlers",
    "state_aware_handler",
]
