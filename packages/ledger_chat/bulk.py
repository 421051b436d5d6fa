"""Bulk pipeline for large pasted blocks (statements, exported lists).

The text is split into segments, each ideally holding one transaction, either
by the model (``{"transaction_chunks": [...]}``) or locally by greedy sentence
accumulation. Segments are then extracted in fixed-size groups: every segment
of a group runs concurrently, the group is awaited, progress is reported, and
the next group starts. A failing segment counts as zero transactions and never
stops the run. Records go straight into the sink, whose fingerprint check keeps
concurrent segments from inserting the same fact twice; the final tally only
counts what the sink actually stored.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date
from typing import NamedTuple

from . import prompting
from .extraction import apply_explicit_direction, extract_transactions, partition_clarifications
from .formatting import category_breakdown
from .llm import ChatBackend, LLMApiError
from .logging_setup import get_logger
from .models import Direction, Transaction
from .parser import load_json_lenient
from .pmap import in_groups, p_map_settled
from .sink import TransactionSink
from .status import StatusChannel

_logger = get_logger("ledger_chat.bulk")

# ---- Tunables ---------------------------------------------------------------
DEFAULT_CONCURRENCY = 5
MAX_LOCAL_CHUNK_CHARS = 1_500

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")

_CHUNKER_SYSTEM = (
    "You split pasted financial text into one chunk per transaction. "
    "You only ever answer with JSON."
)


class BulkReport(NamedTuple):
    segments: int
    failed_segments: int
    extracted: int
    skipped_for_clarification: int
    inserted: list[Transaction]


def chunk_with_llm(text: str, llm: ChatBackend) -> list[str]:
    """Ask the model for segment boundaries; ``[]`` when the reply is unusable."""

    raw = llm.generate_json(
        prompting.system_and_user(_CHUNKER_SYSTEM, prompting.build_chunking_prompt(text))
    )
    obj = load_json_lenient(raw)
    chunks = obj.get("transaction_chunks") if isinstance(obj, dict) else None
    if not isinstance(chunks, list):
        _logger.warning("bulk:chunk_shape_invalid type=%s", type(obj).__name__)
        return []
    return [c.strip() for c in chunks if isinstance(c, str) and c.strip()]


def chunk_locally(text: str, max_chars: int = MAX_LOCAL_CHUNK_CHARS) -> list[str]:
    """Greedy sentence/line accumulation up to ``max_chars`` per segment.

    A single sentence longer than ``max_chars`` becomes a segment of its own.
    """

    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        if current and len(current) + 1 + len(sentence) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence
    if current:
        chunks.append(current)
    return chunks


def segment_text(text: str, llm: ChatBackend) -> list[str]:
    try:
        chunks = chunk_with_llm(text, llm)
    except LLMApiError as e:
        _logger.warning("bulk:chunk_llm_failed status=%s error=%s", e.status, e.message)
        chunks = []
    if chunks:
        _logger.info("bulk:segmented strategy=llm segments=%d", len(chunks))
        return chunks
    chunks = chunk_locally(text)
    _logger.info("bulk:segmented strategy=local segments=%d", len(chunks))
    return chunks


def _summary_message(report: BulkReport) -> str:
    if report.inserted:
        msg = (
            f"Finished processing your data. Added {len(report.inserted)} new transaction(s).\n\n"
            f"Breakdown by category:\n{category_breakdown(report.inserted)}"
        )
    else:
        msg = "I processed your data but didn't find any new transactions to add."
    if report.skipped_for_clarification:
        msg += (
            f"\n\n{report.skipped_for_clarification} transaction(s) were missing details "
            "and were not added; send them separately and I'll ask about them."
        )
    if report.failed_segments:
        msg += f"\n\n{report.failed_segments} segment(s) could not be processed."
    return msg


def process_bulk(
    text: str,
    *,
    llm: ChatBackend,
    sink: TransactionSink,
    status: StatusChannel,
    reference_date: date,
    concurrency: int = DEFAULT_CONCURRENCY,
    base_currency: str = "USD",
    explicit_direction: Direction | None = None,
    segmenter: Callable[[str, ChatBackend], list[str]] = segment_text,
) -> BulkReport:
    """Extract every transaction in ``text`` into ``sink``.

    Progress and the final tally go to ``status``; the returned report mirrors
    what was announced.
    """

    status.set_status("Analyzing bulk data…", 5)
    segments = segmenter(text, llm)
    if not segments:
        report = BulkReport(0, 0, 0, 0, [])
        status.append_message("assistant", "I couldn't find any transaction data in that text.")
        status.set_status("Finished", 100)
        return report

    def _worker(segment: str) -> tuple[int, int, list[Transaction]]:
        extraction = extract_transactions(
            segment, llm=llm, reference_date=reference_date, base_currency=base_currency
        )
        records = apply_explicit_direction(extraction.transactions, explicit_direction)
        clear, unclear = partition_clarifications(records)
        return len(records), len(unclear), sink.insert(clear)

    total = len(segments)
    done = 0
    failed = 0
    extracted = 0
    unclear_total = 0
    inserted: list[Transaction] = []
    for group in in_groups(segments, concurrency):
        for outcome in p_map_settled(group, _worker, concurrency=len(group)):
            if not outcome.ok:
                failed += 1
                _logger.warning(
                    "bulk:segment_failed error=%s detail=%s",
                    outcome.error.__class__.__name__,
                    outcome.error,
                )
                continue
            n_records, n_unclear, stored = outcome.value
            extracted += n_records
            unclear_total += n_unclear
            inserted.extend(stored)
        done += len(group)
        status.set_status(f"Processed {done}/{total} segments", 5 + int(90 * done / total))

    report = BulkReport(total, failed, extracted, unclear_total, inserted)
    _logger.info(
        "bulk:done segments=%d failed=%d extracted=%d inserted=%d",
        total,
        failed,
        extracted,
        len(inserted),
    )
    status.append_message("assistant", _summary_message(report))
    status.set_status("Finished", 100)
    return report
