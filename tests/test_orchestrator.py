from __future__ import annotations

import threading
from datetime import date

import pytest

from ledger_chat.config import Settings
from ledger_chat.handlers.base import Handler
from ledger_chat.handlers.fallback import normal_response_handler
from ledger_chat.handlers.middleware import DEFAULT_MIDDLEWARE
from ledger_chat.handlers.registry import HandlerChain
from ledger_chat.llm import LLMApiError, LLMRetryError
from ledger_chat.models import Handled, Transaction
from ledger_chat.orchestrator import BUSY_REPLY, Conversation, error_message, local_summary

from tests.helpers.llm_stub import ScriptedLLM

SETTINGS = Settings(
    provider="ollama",
    base_url="http://llm.test/v1",
    api_key="k",
    simple_model="small",
    heavy_model="big",
)


def _conversation(llm=None, chain=None) -> Conversation:
    return Conversation(
        llm=llm or ScriptedLLM(),
        settings=SETTINGS,
        chain=chain,
        today=lambda: date(2024, 4, 2),
    )


def _chain_with(run) -> HandlerChain:
    return HandlerChain(
        [Handler(name="test", priority=1, applies=lambda _c: True, run=run)],
        fallback=normal_response_handler(),
        middleware=DEFAULT_MIDDLEWARE,
    )


def _tx(txn_id: str, amount: float, direction: str) -> Transaction:
    return Transaction(
        id=txn_id,
        batch_id="b",
        date="2024-04-01",
        description=f"Item {txn_id}",
        amount=amount,
        direction=direction,
    )


def test_empty_input_is_ignored():
    conv = _conversation()

    assert conv.send_message("   ") is None
    assert conv.status.history() == []


def test_busy_conversation_rejects_without_recording():
    conv = _conversation()
    conv.status.set_busy(True)

    assert conv.send_message("Spent $5 on coffee") == BUSY_REPLY
    assert conv.status.history() == []
    assert conv.status.busy is True


def test_second_message_during_a_running_turn_is_rejected():
    started = threading.Event()
    release = threading.Event()

    def _slow(_ctx):
        started.set()
        release.wait(timeout=5)
        return Handled(response="done")

    conv = _conversation(chain=_chain_with(_slow))
    replies: list[str | None] = []
    worker = threading.Thread(target=lambda: replies.append(conv.send_message("first")))
    worker.start()
    assert started.wait(timeout=5)

    assert conv.send_message("second") == BUSY_REPLY

    release.set()
    worker.join(timeout=5)
    assert replies == ["done"]
    assert [m.content for m in conv.status.history()] == ["first", "done"]
    assert conv.status.busy is False


def test_turn_failure_clears_state_and_apologizes():
    def _boom(_ctx):
        raise RuntimeError("kaput")

    conv = _conversation(chain=_chain_with(_boom))
    conv.state.set_direction_clarification(["b:0"])
    conv.state.set_last_correction_target("b:0")

    reply = conv.send_message("anything")

    assert reply == "Unexpected error: kaput"
    assert conv.state.pending is None
    assert conv.state.last_correction_txn_id is None
    assert conv.status.status == "Error"
    assert conv.status.busy is False
    assert conv.status.history()[-1].content == reply


def test_model_failure_during_extraction_is_reported_by_category():
    llm = ScriptedLLM(json_replies=[LLMRetryError(429, "JSON generation failed")])
    conv = _conversation(llm=llm)

    reply = conv.send_message("Spent $5 on coffee today")

    assert "rate limiting" in reply
    assert conv.transactions == []
    assert conv.status.busy is False


def test_successful_turn_finishes_status():
    conv = _conversation(chain=_chain_with(lambda _ctx: Handled(response="hi")))

    assert conv.send_message("hello") == "hi"
    assert conv.status.status == "Finished"
    assert conv.status.percent == 100


@pytest.mark.parametrize(
    ("error", "fragment"),
    [
        (LLMApiError(401, "bad key"), "authenticate"),
        (LLMApiError(403, "forbidden"), "authenticate"),
        (LLMApiError(429, "slow down"), "rate limiting"),
        (LLMApiError(408, "timeout"), "took too long"),
        (LLMApiError(500, "boom"), "Model error (500): boom"),
        (KeyError("x"), "Unexpected error"),
    ],
)
def test_error_message_categories(error, fragment):
    assert fragment in error_message(error)


def test_summary_without_transactions():
    assert _conversation().generate_summary() == "You haven't recorded any transactions yet."


def test_summary_uses_the_model_and_falls_back_to_local_totals():
    llm = ScriptedLLM(chat_replies=["You spent a little.", LLMApiError(500, "down"), ""])
    conv = _conversation(llm=llm)
    conv.sink.add([_tx("b:0", 10.0, "out"), _tx("b:1", 25.5, "in")])

    assert conv.generate_summary() == "You spent a little."
    expected = "You have 2 transaction(s) recorded: $25.50 in and $10.00 out."
    assert conv.generate_summary() == expected
    assert conv.generate_summary() == expected
    assert local_summary(conv.transactions) == expected


def test_reset_keeps_recorded_transactions():
    conv = _conversation(chain=_chain_with(lambda _ctx: Handled(response="ok")))
    conv.sink.add([_tx("b:0", 10.0, "out")])
    conv.send_message("hello")
    conv.state.set_direction_clarification(["b:0"])

    conv.reset()

    assert conv.status.history() == []
    assert conv.state.pending is None
    assert conv.status.status == "Idle"
    assert len(conv.transactions) == 1
