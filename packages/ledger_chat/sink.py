"""In-memory transaction sink (the master list).

All mutation goes through :class:`TransactionSink`. ``add`` skips records whose
id or fingerprint is already stored, under one lock, so concurrent bulk
segments that each read a stale view can never insert the same fact twice.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from .categorizer import CATEGORIES, EXPENSES
from .fingerprint import compute_fingerprint
from .logging_setup import get_logger
from .models import Transaction

_logger = get_logger("ledger_chat.sink")


class TransactionSink:
    def __init__(self, *, base_currency: str = "USD") -> None:
        self._lock = threading.Lock()
        self._base_currency = base_currency
        self._items: list[Transaction] = []
        self._ids: set[str] = set()
        self._fingerprints: set[str] = set()

    def _fp(self, tx: Transaction) -> str:
        return compute_fingerprint(tx, base_currency=self._base_currency)

    def _reindex(self) -> None:
        self._ids = {t.id for t in self._items}
        self._fingerprints = {self._fp(t) for t in self._items}

    def add(self, transactions: Iterable[Transaction], *, force: bool = False) -> int:
        """Insert new records and return how many were actually inserted.

        Records with ``needs_clarification`` set are never stored. With
        ``force=True`` the fingerprint check is skipped (an explicit "add the
        duplicate anyway" from the user); the id check always applies.
        """

        return len(self.insert(transactions, force=force))

    def insert(self, transactions: Iterable[Transaction], *, force: bool = False) -> list[Transaction]:
        """Like :meth:`add`, returning the records that were stored."""

        inserted: list[Transaction] = []
        skipped = 0
        with self._lock:
            for tx in transactions:
                if tx.needs_clarification or tx.id in self._ids:
                    skipped += 1
                    continue
                fp = self._fp(tx)
                if not force and fp in self._fingerprints:
                    skipped += 1
                    continue
                self._items.append(tx)
                self._ids.add(tx.id)
                self._fingerprints.add(fp)
                inserted.append(tx)
        _logger.info("sink:add inserted=%d skipped=%d force=%s", len(inserted), skipped, force)
        return inserted

    def update(self, transaction: Transaction) -> bool:
        """Replace the stored record with the same id; False when absent."""

        with self._lock:
            for i, existing in enumerate(self._items):
                if existing.id == transaction.id:
                    self._items[i] = transaction
                    self._reindex()
                    return True
        return False

    def delete(self, txn_id: str) -> bool:
        with self._lock:
            before = len(self._items)
            self._items = [t for t in self._items if t.id != txn_id]
            removed = len(self._items) != before
            if removed:
                self._reindex()
        return removed

    def list(self) -> list[Transaction]:
        with self._lock:
            return list(self._items)

    def get(self, txn_id: str) -> Transaction | None:
        with self._lock:
            return next((t for t in self._items if t.id == txn_id), None)

    def by_batch(self, batch_id: str) -> list[Transaction]:
        with self._lock:
            return [t for t in self._items if t.batch_id == batch_id]

    def category_totals(self) -> dict[str, float]:
        """Signed totals per category; ``Expenses`` counts negative."""

        totals = {c: 0.0 for c in CATEGORIES}
        for tx in self.list():
            amount = -abs(tx.amount) if tx.category == EXPENSES else abs(tx.amount)
            totals[tx.category] = round(totals.get(tx.category, 0.0) + amount, 2)
        return totals

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
