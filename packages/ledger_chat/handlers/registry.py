"""Priority-ordered handler chain with wrapping middleware."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from ..logging_setup import get_logger
from ..models import Handled, HandlerResult
from .base import Handler, HandlerContext

_logger = get_logger("ledger_chat.handlers.registry")

type Next = Callable[[HandlerContext], HandlerResult]
type Middleware = Callable[[HandlerContext, Next], HandlerResult]


class HandlerChain:
    """Evaluate handlers in priority order; the first one that handles wins.

    A handler whose predicate passes may still return ``NotHandled`` (e.g. a
    state-aware handler that cleared a stale context); evaluation then moves
    on. The ``fallback`` runs when nothing claims the message.
    """

    def __init__(
        self,
        handlers: Iterable[Handler] = (),
        *,
        fallback: Handler,
        middleware: Iterable[Middleware] = (),
    ) -> None:
        self._handlers: list[Handler] = []
        self._fallback = fallback
        self._middleware: list[Middleware] = list(middleware)
        for h in handlers:
            self.register(h)

    @property
    def handlers(self) -> list[Handler]:
        return list(self._handlers)

    def register(self, handler: Handler) -> None:
        """Insert ``handler`` by priority (stable for equal priorities).

        Raises ``ValueError`` when a state-aware handler would run after an
        extracting handler, or the name is already registered.
        """

        if any(h.name == handler.name for h in self._handlers):
            raise ValueError(f"handler already registered: {handler.name}")
        candidate = sorted([*self._handlers, handler], key=lambda h: h.priority)
        first_extract = next((h.priority for h in candidate if h.extracts), None)
        if first_extract is not None:
            late = [h.name for h in candidate if h.state_aware and h.priority >= first_extract]
            if late:
                raise ValueError(
                    f"state-aware handlers must run before extraction: {', '.join(late)}"
                )
        self._handlers = candidate

    def use(self, middleware: Middleware) -> None:
        """Append middleware; the first registered is the outermost layer."""

        self._middleware.append(middleware)

    def dispatch(self, ctx: HandlerContext) -> HandlerResult:
        """Run the chain without middleware."""

        for handler in self._handlers:
            if not handler.applies(ctx):
                continue
            result = handler.run(ctx)
            if isinstance(result, Handled):
                _logger.info("chain:handled handler=%s priority=%d", handler.name, handler.priority)
                return result
            _logger.debug("chain:fall_through handler=%s", handler.name)
        _logger.info("chain:fallback handler=%s", self._fallback.name)
        return self._fallback.run(ctx)

    def handle(self, ctx: HandlerContext) -> HandlerResult:
        """Run the chain wrapped in every middleware layer."""

        call: Next = self.dispatch
        for mw in reversed(self._middleware):
            call = _bind(mw, call)
        return call(ctx)


def _bind(mw: Middleware, nxt: Next) -> Next:
    def _call(ctx: HandlerContext) -> HandlerResult:
        return mw(ctx, nxt)

    return _call
