from __future__ import annotations

from datetime import date

import pytest

from ledger_chat.handlers import build_default_chain, default_handlers
from ledger_chat.handlers.base import Handler, HandlerContext, state_aware_handler
from ledger_chat.handlers.direction import direction_clarification_handler
from ledger_chat.handlers.fallback import normal_response_handler
from ledger_chat.handlers.middleware import (
    context_enrichment_middleware,
    error_logging_middleware,
    transaction_auto_add_middleware,
)
from ledger_chat.handlers.registry import HandlerChain
from ledger_chat.llm import LLMApiError
from ledger_chat.models import NOT_HANDLED, DirectionClarification, Handled, Transaction
from ledger_chat.sink import TransactionSink
from ledger_chat.state import ConversationState
from ledger_chat.status import ConversationStatus

from tests.helpers.llm_stub import ScriptedLLM


def _ctx(message: str, *, llm=None, state=None, sink=None, explicit=None) -> HandlerContext:
    return HandlerContext(
        message=message,
        explicit_direction=explicit,
        state=state or ConversationState(),
        sink=sink or TransactionSink(),
        status=ConversationStatus(),
        llm=llm or ScriptedLLM(),
        reference_date=date(2024, 4, 2),
    )


def _always(name: str, priority: int, response: str | None = "ok", **flags) -> Handler:
    return Handler(
        name=name,
        priority=priority,
        applies=lambda _ctx: True,
        run=lambda _ctx: Handled(response=response),
        **flags,
    )


def _tx(txn_id: str = "b:0") -> Transaction:
    return Transaction(id=txn_id, batch_id="b", date="2024-04-01", description="Tea", amount=3.0)


def test_default_chain_is_priority_ordered_with_state_aware_handlers_first():
    chain = build_default_chain()
    handlers = chain.handlers
    priorities = [h.priority for h in handlers]

    assert priorities == sorted(priorities)
    assert [h.name for h in handlers][:4] == [
        "direction_clarification",
        "split_share_response",
        "duplicate_confirmation",
        "correction_clarification",
    ]
    first_extract = min(h.priority for h in handlers if h.extracts)
    assert all(h.priority < first_extract for h in handlers if h.state_aware)
    assert len(default_handlers()) == len(handlers)


def test_state_aware_handler_after_extraction_is_rejected():
    chain = HandlerChain([_always("extract", 50, extracts=True)], fallback=_always("fb", 999))

    late = state_aware_handler(
        "late", 60, DirectionClarification, lambda _ctx, _p: Handled(response="x")
    )
    with pytest.raises(ValueError, match="late"):
        chain.register(late)


def test_duplicate_names_are_rejected():
    chain = HandlerChain([_always("a", 1)], fallback=_always("fb", 999))

    with pytest.raises(ValueError):
        chain.register(_always("a", 2))


def test_equal_priorities_keep_registration_order():
    chain = HandlerChain([_always("first", 5, "1"), _always("second", 5, "2")], fallback=_always("fb", 999))

    assert chain.dispatch(_ctx("hi")).response == "1"


def test_a_handler_returning_not_handled_falls_through():
    seen: list[str] = []

    def _declines(_ctx):
        seen.append("declines")
        return NOT_HANDLED

    chain = HandlerChain(
        [
            Handler(name="declines", priority=1, applies=lambda _c: True, run=_declines),
            Handler(name="skipped", priority=2, applies=lambda _c: False, run=lambda _c: Handled("no")),
            _always("claims", 3, "claimed"),
        ],
        fallback=_always("fb", 999, "fallback"),
    )

    assert chain.dispatch(_ctx("anything")).response == "claimed"
    assert seen == ["declines"]


def test_fallback_runs_when_nothing_claims_the_message():
    llm = ScriptedLLM(chat_replies=["Happy to chat!"])
    chain = HandlerChain([], fallback=normal_response_handler())

    result = chain.dispatch(_ctx("what's the weather like", llm=llm))

    assert result.response == "Happy to chat!"
    (call,) = llm.chat_calls
    assert call["messages"][0]["role"] == "system"
    assert ScriptedLLM.user_text(call) == "what's the weather like"
    assert call["temperature"] == 0.7


def test_fallback_apologizes_when_the_model_fails():
    llm = ScriptedLLM(chat_replies=[LLMApiError(500, "backend down")])
    chain = HandlerChain([], fallback=normal_response_handler())

    result = chain.dispatch(_ctx("tell me a joke", llm=llm))

    assert "backend down" in result.response


def test_stale_pending_context_is_cleared_and_falls_through():
    state = ConversationState()
    state.set_direction_clarification(["b:0"])
    chain = HandlerChain(
        [direction_clarification_handler(), _always("next", 50, "handled later")],
        fallback=_always("fb", 999),
    )

    result = chain.dispatch(_ctx("I paid $12 for lunch", state=state))

    assert result.response == "handled later"
    assert state.pending is None


def test_auto_add_middleware_inserts_and_announces():
    sink = TransactionSink()
    chain = HandlerChain(
        [Handler(name="h", priority=1, applies=lambda _c: True, run=lambda _c: Handled("Done.", (_tx(),)))],
        fallback=_always("fb", 999),
        middleware=[transaction_auto_add_middleware],
    )

    first = chain.handle(_ctx("x", sink=sink))
    again = chain.handle(_ctx("x", sink=sink))

    assert first.response == "Done. Added 1 transaction(s)."
    # Nothing new was inserted, so nothing is announced.
    assert again.response == "Done."
    assert len(sink) == 1


def test_auto_add_middleware_respects_announce_false():
    sink = TransactionSink()
    quiet = Handler(
        name="quiet",
        priority=1,
        applies=lambda _c: True,
        run=lambda _c: Handled("Recorded.", (_tx(),), announce=False),
    )
    chain = HandlerChain([quiet], fallback=_always("fb", 999), middleware=[transaction_auto_add_middleware])

    assert chain.handle(_ctx("x", sink=sink)).response == "Recorded."
    assert len(sink) == 1


def test_error_middleware_reraises_unchanged():
    def _boom(_ctx):
        raise RuntimeError("kaput")

    chain = HandlerChain(
        [Handler(name="boom", priority=1, applies=lambda _c: True, run=_boom)],
        fallback=_always("fb", 999),
        middleware=[error_logging_middleware],
    )

    with pytest.raises(RuntimeError, match="kaput"):
        chain.handle(_ctx("x"))


def test_context_enrichment_derives_the_explicit_direction_hint():
    seen: list[str | None] = []

    def _record(ctx):
        seen.append(ctx.explicit_direction)
        return Handled("ok")

    chain = HandlerChain(
        [Handler(name="rec", priority=1, applies=lambda _c: True, run=_record)],
        fallback=_always("fb", 999),
        middleware=[context_enrichment_middleware],
    )

    chain.handle(_ctx("mark all as income"))
    chain.handle(_ctx("mark all as income", explicit="out"))
    chain.handle(_ctx("coffee was nice"))

    assert seen == ["in", "out", None]


def test_middleware_order_first_registered_is_outermost():
    calls: list[str] = []

    def _mw(tag):
        def _inner(ctx, nxt):
            calls.append(f"{tag}>")
            result = nxt(ctx)
            calls.append(f"<{tag}")
            return result

        return _inner

    chain = HandlerChain([_always("h", 1)], fallback=_always("fb", 999), middleware=[_mw("a")])
    chain.use(_mw("b"))

    chain.handle(_ctx("x"))

    assert calls == ["a>", "b>", "<b", "<a"]
