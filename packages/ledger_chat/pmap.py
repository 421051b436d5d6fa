"""Bounded-concurrency mapping over ThreadPoolExecutor, in the spirit of ``p-map``.

Goals
-----
- One call: an iterable, a mapper, and a ``concurrency`` cap.
- Hide executor mechanics (submission window, shutdown).
- Preserve input order while running work concurrently.
- Never let one failing item take the others down: every item settles into a
  :class:`Settled` carrying either its value or its exception.

Non-goals
---------
- Fail-fast cancellation.
- Timeouts (callers bound their own network calls).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Generic, TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class Settled(Generic[OutT]):
    """Outcome of one mapper call: ``value`` or ``error``, never both."""

    __slots__ = ("value", "error")

    def __init__(self, value: OutT | None = None, error: Exception | None = None) -> None:
        self.value = value
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"Settled(error={self.error!r})" if self.error else f"Settled(value={self.value!r})"


def p_map_settled(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[Settled[OutT]]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight.

    Returns one :class:`Settled` per input item, in input order. Mapper
    exceptions are captured, not raised.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    it = enumerate(iterable)
    settled: dict[int, Settled[OutT]] = {}
    future_to_idx: dict[Future, int] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        return fut

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    settled[idx] = Settled(value=fut.result())
                except Exception as e:  # noqa: BLE001 - captured per item
                    settled[idx] = Settled(error=e)
            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    return [settled[i] for i in range(len(settled))]


def in_groups(items: Sequence[InT], size: int) -> Iterator[list[InT]]:
    """Yield consecutive slices of ``items`` of at most ``size`` elements."""

    if size < 1:
        raise ValueError("size must be a positive integer")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


__all__ = ["Settled", "in_groups", "p_map_settled"]
