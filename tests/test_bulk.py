from __future__ import annotations

from datetime import date

from ledger_chat.bulk import chunk_locally, process_bulk, segment_text
from ledger_chat.config import Settings
from ledger_chat.llm import LLMApiError
from ledger_chat.orchestrator import Conversation
from ledger_chat.pmap import in_groups, p_map_settled
from ledger_chat.sink import TransactionSink
from ledger_chat.status import ConversationStatus

from tests.helpers.llm_stub import ScriptedLLM, tx_json

REF = date(2024, 4, 2)

RECORDS = {
    "Coffee": {"date": "2024-04-01", "description": "Coffee", "amount": 5, "direction": "out"},
    "Lunch": {"date": "2024-04-01", "description": "Lunch", "amount": 12, "direction": "out"},
    "Salary": {"date": "2024-04-01", "description": "Salary", "amount": 3000, "direction": "in"},
}


def _segment_of(messages) -> str:
    # The extraction prompt quotes the segment between triple quotes.
    return messages[-1]["content"].split('"""')[1].strip()


def _by_segment(messages) -> str:
    segment = _segment_of(messages)
    if "BOOM" in segment:
        raise LLMApiError(500, "segment failed")
    if "unclear" in segment:
        return tx_json(dict(RECORDS["Lunch"], needs_clarification="Which lunch?"))
    return tx_json(*(rec for name, rec in RECORDS.items() if name in segment))


def _fixed(segments):
    return lambda _text, _llm: list(segments)


def _run(segments, *, concurrency=5, status=None, sink=None):
    llm = ScriptedLLM(json_replies=[_by_segment] * len(segments))
    status = status or ConversationStatus()
    sink = sink or TransactionSink()
    report = process_bulk(
        "ignored",
        llm=llm,
        sink=sink,
        status=status,
        reference_date=REF,
        concurrency=concurrency,
        segmenter=_fixed(segments),
    )
    return report, status, sink


def test_failing_segment_does_not_stop_the_others():
    report, status, sink = _run(["Coffee $5", "BOOM", "Salary $3000"])

    assert report.segments == 3
    assert report.failed_segments == 1
    assert report.extracted == 2
    assert sorted(t.description for t in report.inserted) == ["Coffee", "Salary"]
    assert len(sink) == 2
    summary = status.history()[-1].content
    assert "Added 2 new transaction(s)" in summary
    assert "1 segment(s) could not be processed" in summary
    assert status.status == "Finished" and status.percent == 100


def test_tally_counts_only_what_the_sink_stored():
    existing = TransactionSink()
    report, status, sink = _run(["Coffee once", "Coffee again", "Lunch"], sink=existing)

    assert report.extracted == 3
    assert len(report.inserted) == 2
    assert len(sink) == 2
    assert "Added 2 new transaction(s)" in status.history()[-1].content


def test_nothing_new_is_reported_as_such():
    sink = TransactionSink()
    _run(["Coffee"], sink=sink)

    report, status, _ = _run(["Coffee"], sink=sink)

    assert report.inserted == []
    assert status.history()[-1].content == (
        "I processed your data but didn't find any new transactions to add."
    )


def test_records_needing_details_are_skipped_and_mentioned():
    report, status, sink = _run(["Coffee", "unclear lunch"])

    assert report.skipped_for_clarification == 1
    assert [t.description for t in sink.list()] == ["Coffee"]
    assert "were missing details" in status.history()[-1].content


def test_progress_is_reported_per_group():
    events = []
    status = ConversationStatus(listener=events.append)

    _run(["Coffee", "Lunch", "Salary"], concurrency=2, status=status)

    progress = [(e.text, e.percent) for e in events if e.kind == "status"]
    assert progress == [
        ("Analyzing bulk data…", 5),
        ("Processed 2/3 segments", 65),
        ("Processed 3/3 segments", 95),
        ("Finished", 100),
    ]


def test_no_segments_short_circuits():
    status = ConversationStatus()
    report = process_bulk(
        "   ",
        llm=ScriptedLLM(),
        sink=TransactionSink(),
        status=status,
        reference_date=REF,
        segmenter=_fixed([]),
    )

    assert report.segments == 0
    assert status.history()[-1].content == "I couldn't find any transaction data in that text."


def test_chunk_locally_accumulates_sentences_up_to_the_limit():
    text = "Paid rent $1200. Bought milk $3.\nSalary $5000"

    assert chunk_locally(text) == ["Paid rent $1200. Bought milk $3. Salary $5000"]
    assert chunk_locally(text, max_chars=20) == ["Paid rent $1200.", "Bought milk $3.", "Salary $5000"]
    assert chunk_locally("  \n\n ") == []


def test_segment_text_prefers_model_chunks():
    llm = ScriptedLLM(json_replies=['{"transaction_chunks": ["rent $1200", "  ", "milk $3", 7]}'])

    assert segment_text("rent $1200 milk $3", llm) == ["rent $1200", "milk $3"]


def test_segment_text_falls_back_to_local_chunking():
    failing = ScriptedLLM(json_replies=[LLMApiError(503, "down")])
    wrong_shape = ScriptedLLM(json_replies=['{"chunks": "nope"}'])

    assert segment_text("Rent $1200. Milk $3.", failing) == ["Rent $1200. Milk $3."]
    assert segment_text("Rent $1200. Milk $3.", wrong_shape) == ["Rent $1200. Milk $3."]


def test_large_paste_goes_through_the_bulk_pipeline():
    lines = [f"2024-04-01 Coffee shop purchase {i} $5" for i in range(12)]
    llm = ScriptedLLM(
        json_replies=['{"transaction_chunks": ["Coffee $5", "Lunch $12"]}', _by_segment, _by_segment]
    )
    conv = Conversation(
        llm=llm,
        settings=Settings(
            provider="ollama", base_url="http://llm.test/v1", api_key="k", simple_model="s", heavy_model="h"
        ),
        today=lambda: REF,
    )

    reply = conv.send_message("\n".join(lines))

    assert reply is None
    assert sorted(t.description for t in conv.transactions) == ["Coffee", "Lunch"]
    assert conv.status.history()[-1].content.startswith("Finished processing your data. Added 2")
    assert conv.status.busy is False


def test_p_map_settled_keeps_order_and_captures_errors():
    def _mapper(n: int) -> int:
        if n == 3:
            raise ValueError("three")
        return n * 10

    out = p_map_settled(range(6), _mapper, concurrency=2)

    assert [o.value for o in out if o.ok] == [0, 10, 20, 40, 50]
    assert isinstance(out[3].error, ValueError)
    assert list(in_groups([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
