"""Conversation orchestrator: the single entry point for one chat session.

``Conversation.send_message`` runs one turn: reject when busy, record the user
message, dispatch through the handler chain, and always finish the turn (busy
flag cleared, terminal status set) whatever the handlers did. Every unexpected
fault lands in the one catch here, which clears pending state and replies with
one categorized apology.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import date

from . import prompting
from .config import Settings, load_settings
from .formatting import format_currency
from .handlers import build_default_chain
from .handlers.base import HandlerContext
from .handlers.registry import HandlerChain
from .llm import ChatBackend, LlmClient, LLMApiError
from .logging_setup import get_logger
from .models import Direction, Handled, Transaction
from .sink import TransactionSink
from .state import ConversationState
from .status import ConversationStatus

_logger = get_logger("ledger_chat.orchestrator")

BUSY_REPLY = "I'm still working on the previous request. Please wait."


def error_message(error: BaseException) -> str:
    """User-facing apology for a failed turn, worded by error category."""

    if isinstance(error, LLMApiError):
        if error.status in (401, 403):
            return (
                "Sorry, I couldn't authenticate with the language model service. "
                "Please check the configured API key."
            )
        if error.status == 429:
            return "Sorry, the language model service is rate limiting requests. Please try again shortly."
        if error.status == 408:
            return (
                "Sorry, the language model service took too long to respond or could not be "
                "reached. Please try again."
            )
        return f"Model error ({error.status}): {error.message}"
    return f"Unexpected error: {error}"


class Conversation:
    """One conversation: state, sink, status and the dispatch chain, all injectable."""

    def __init__(
        self,
        *,
        llm: ChatBackend | None = None,
        settings: Settings | None = None,
        sink: TransactionSink | None = None,
        state: ConversationState | None = None,
        status: ConversationStatus | None = None,
        chain: HandlerChain | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings or load_settings()
        self.llm: ChatBackend = llm or LlmClient(self.settings)
        self.sink = sink or TransactionSink(base_currency=self.settings.base_currency)
        self.state = state or ConversationState()
        self.status = status or ConversationStatus()
        self.chain = chain or build_default_chain()
        self._today = today
        self._turn_lock = threading.Lock()

    @property
    def transactions(self) -> list[Transaction]:
        return self.sink.list()

    def _begin_turn(self) -> bool:
        with self._turn_lock:
            if self.status.busy:
                return False
            self.status.set_busy(True)
            return True

    def send_message(self, text: str, *, explicit_direction: Direction | None = None) -> str | None:
        """Run one turn for ``text`` and return the assistant reply.

        ``None`` means nothing was said through the return value (empty input,
        or the handler already spoke through the status channel).
        """

        message = (text or "").strip()
        if not message:
            return None
        if not self._begin_turn():
            _logger.info("conversation:busy_rejected")
            return BUSY_REPLY

        response: str | None = None
        failed = False
        try:
            self.status.append_message("user", message)
            self.status.set_status("Thinking…", 10)
            ctx = HandlerContext(
                message=message,
                explicit_direction=explicit_direction,
                state=self.state,
                sink=self.sink,
                status=self.status,
                llm=self.llm,
                reference_date=self._today(),
                base_currency=self.settings.base_currency,
                bulk_concurrency=self.settings.bulk_concurrency,
            )
            result = self.chain.handle(ctx)
            if isinstance(result, Handled):
                response = result.response
        except Exception as e:  # noqa: BLE001 - the one turn-level catch
            failed = True
            _logger.error("conversation:turn_failed error=%s detail=%s", e.__class__.__name__, e)
            self.state.clear_all()
            self.status.set_status("Error", None)
            response = error_message(e)
        finally:
            if response:
                self.status.append_message("assistant", response)
            if not failed:
                self.status.set_status("Finished", 100)
            self.status.set_busy(False)
        return response

    def generate_summary(self) -> str:
        """Model-written summary of recorded transactions, or local totals."""

        txns = self.sink.list()
        if not txns:
            return "You haven't recorded any transactions yet."
        messages = prompting.system_and_user(
            prompting.build_system_prompt(self._today().isoformat()),
            prompting.build_summary_prompt(txns),
        )
        try:
            summary = self.llm.chat(messages, temperature=0.3)
        except LLMApiError as e:
            _logger.warning("conversation:summary_failed status=%s error=%s", e.status, e.message)
            summary = ""
        return summary.strip() or local_summary(txns, self.settings.base_currency)

    def reset(self) -> None:
        """Forget history, pending state and the busy flag; recorded transactions stay."""

        self.state.clear_all()
        self.status.reset()
        _logger.info("conversation:reset")


def local_summary(transactions: list[Transaction], currency: str = "USD") -> str:
    money_in = sum(t.amount for t in transactions if t.direction == "in")
    money_out = sum(t.amount for t in transactions if t.direction == "out")
    return (
        f"You have {len(transactions)} transaction(s) recorded: "
        f"{format_currency(money_in, currency)} in and {format_currency(money_out, currency)} out."
    )
