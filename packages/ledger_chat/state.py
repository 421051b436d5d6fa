"""Pending-interaction state for one conversation.

Holds at most one active pending context plus the count-correction memo.
Setting any context replaces the previous one and drops the memo, so a reply
can only ever be interpreted against the question that was asked last.
"""

from __future__ import annotations

import threading
from typing import TypeVar

from .logging_setup import get_logger
from .models import (
    CorrectionClarification,
    CorrectionMemo,
    DirectionClarification,
    DuplicateConfirmation,
    PendingContext,
    SplitBillShare,
    Transaction,
)

_logger = get_logger("ledger_chat.state")

CtxT = TypeVar("CtxT", DirectionClarification, SplitBillShare, CorrectionClarification, DuplicateConfirmation)


class ConversationState:
    """Injectable, lock-guarded pending-interaction state."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._pending: PendingContext | None = None
        self._memo: CorrectionMemo | None = None
        self._last_correction_txn_id: str | None = None

    # ---- reads ----------------------------------------------------------

    @property
    def pending(self) -> PendingContext | None:
        with self._lock:
            return self._pending

    def pending_of(self, kind: type[CtxT]) -> CtxT | None:
        """Return the active context if it is a ``kind``, else ``None``."""

        with self._lock:
            return self._pending if isinstance(self._pending, kind) else None

    @property
    def memo(self) -> CorrectionMemo | None:
        with self._lock:
            return self._memo

    @property
    def last_correction_txn_id(self) -> str | None:
        with self._lock:
            return self._last_correction_txn_id

    # ---- pending contexts -----------------------------------------------

    def _set(self, ctx: PendingContext) -> None:
        with self._lock:
            previous = self._pending
            self._pending = ctx
            self._memo = None
        _logger.info(
            "state:set_pending kind=%s replaced=%s",
            type(ctx).__name__,
            type(previous).__name__ if previous is not None else None,
        )

    def set_direction_clarification(self, transaction_ids: list[str] | tuple[str, ...]) -> None:
        self._set(DirectionClarification(transaction_ids=tuple(transaction_ids)))

    def set_split_bill(self, ctx: SplitBillShare) -> None:
        self._set(ctx)

    def set_correction_clarification(self, ctx: CorrectionClarification) -> None:
        self._set(ctx)

    def set_duplicate_confirmation(self, transactions: list[Transaction] | tuple[Transaction, ...]) -> None:
        self._set(DuplicateConfirmation(transactions=tuple(transactions)))

    def clear_pending(self) -> None:
        with self._lock:
            self._pending = None

    # ---- correction memo ------------------------------------------------

    def set_memo(self, last_message: str, batch_id: str) -> None:
        with self._lock:
            self._memo = CorrectionMemo(last_message=last_message, batch_id=batch_id)

    def set_last_correction_target(self, txn_id: str | None) -> None:
        with self._lock:
            self._last_correction_txn_id = txn_id

    def clear_correction_context(self) -> None:
        with self._lock:
            self._memo = None
            self._last_correction_txn_id = None

    # ---- everything -----------------------------------------------------

    def clear_all(self) -> None:
        """Drop every pending context and memo; used on error paths."""

        with self._lock:
            self._pending = None
            self._memo = None
            self._last_correction_txn_id = None
        _logger.info("state:clear_all")
