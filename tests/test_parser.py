from __future__ import annotations

import json
from datetime import date

from ledger_chat.parser import load_json_lenient, parse, parse_report, repair_json

REF = date(2024, 4, 2)


def test_bad_quoting_and_trailing_comma_still_yield_the_record():
    raw = "`{ transactions: [ {date:'2024-04-01', description:\"Coffee\", amount:5.75, direction:'OUT'} ], }`"

    out = parse(raw, "b1", REF, base_ts=1000)

    assert len(out) == 1
    tx = out[0]
    assert tx.amount == 5.75
    assert tx.direction == "out"
    assert tx.date == "2024-04-01"
    assert tx.description == "Coffee"
    assert tx.id == "b1:1000"
    assert tx.batch_id == "b1"
    assert tx.category == "Coffee Shops"


def test_top_level_array_and_transactions_object_are_both_accepted():
    item = {"date": "2024-03-01", "description": "Rent", "amount": "$1,200.00", "direction": "out"}

    from_array = parse(json.dumps([item]), "a", REF, base_ts=0)
    from_object = parse(json.dumps({"transactions": [item]}), "a", REF, base_ts=0)

    assert [t.model_dump() for t in from_array] == [t.model_dump() for t in from_object]
    assert from_array[0].amount == 1200.0
    assert from_array[0].currency == "USD"
    assert from_array[0].category == "Housing"


def test_prose_around_json_is_sliced_and_missing_date_resolves_to_reference():
    raw = 'Sure! Here you go:\n{"transactions":[{"description":"Lunch","amount":12}]}\nHope that helps'

    report = parse_report(raw, "b", REF, base_ts=0)

    assert report.strategy == "whole_or_slice"
    assert len(report.transactions) == 1
    assert report.transactions[0].date == "2024-04-02"


def test_code_fences_and_python_literals_are_repaired():
    raw = (
        "```json\n{'transactions': [{'description': 'Salary', 'amount': 3000, "
        "'direction': None, 'needs_clarification': False,}]}\n```"
    )

    report = parse_report(raw, "b", REF, base_ts=0)

    assert report.strategy == "repaired"
    (tx,) = report.transactions
    assert tx.direction == "in"
    assert tx.category == "Salary"
    assert tx.needs_clarification is None
    assert report.defaulted_direction_ids == ()


def test_transactions_slice_pass_when_outer_slices_fail():
    raw = (
        '{"transactions": [{"description": "Gym", "amount": 40}], '
        '"tags": ["a", "b"], "note": "cut off'
    )

    report = parse_report(raw, "b", REF, base_ts=0)

    assert report.strategy == "transactions_slice"
    assert [t.description for t in report.transactions] == ["Gym"]


def test_fragment_scan_is_the_last_resort():
    raw = (
        'garbage {"date": "2024-03-03", "description": "Taxi", "amount": 18} more '
        '{"note": "x"} {"description": "Bus", "amount": "2.50"} [[['
    )

    report = parse_report(raw, "b", REF, base_ts=0)

    assert report.strategy == "fragments"
    assert [(t.description, t.amount) for t in report.transactions] == [("Taxi", 18.0), ("Bus", 2.5)]


def test_earliest_successful_pass_wins_and_ids_follow_input_order():
    raw = json.dumps(
        {
            "transactions": [
                {"date": "2024-01-01", "description": "A", "amount": 1},
                {"date": "2024-01-02", "description": "B", "amount": 2},
            ]
        }
    )

    first = parse_report(raw, "batch", REF, base_ts=500)
    second = parse_report(raw, "batch", REF, base_ts=500)

    assert first.strategy == "whole_or_slice"
    assert [t.id for t in first.transactions] == ["batch:500", "batch:501"]
    assert [t.model_dump() for t in first.transactions] == [t.model_dump() for t in second.transactions]


def test_incomplete_candidates_are_dropped_not_persisted():
    raw = json.dumps(
        [
            {"description": "Zero", "amount": 0},
            {"amount": 5},
            {"description": "unknown", "date": "unknown", "amount": 9},
            {"description": "Refund", "amount": -3},
            {"description": "No amount"},
        ]
    )

    out = parse(raw, "b", REF, base_ts=0)

    assert [(t.description, t.amount) for t in out] == [("Refund", 3.0)]
    assert all(t.amount > 0 for t in out)


def test_position_in_batch_is_kept_when_earlier_candidates_are_dropped():
    raw = json.dumps([{"description": "Zero", "amount": 0}, {"description": "Tea", "amount": 3}])

    (tx,) = parse(raw, "b", REF, base_ts=10)

    assert tx.id == "b:11"


def test_direction_defaults_to_out_and_is_reported():
    raw = json.dumps([{"description": "Mystery", "amount": 7, "direction": "unknown"}])

    report = parse_report(raw, "b", REF, base_ts=0)

    (tx,) = report.transactions
    assert tx.direction == "out"
    assert tx.category == "Expenses"
    assert report.defaulted_direction_ids == (tx.id,)


def test_direction_inferred_from_description_keywords():
    raw = json.dumps(
        [
            {"description": "Mobile deposit", "amount": 100},
            {"description": "Card purchase at store", "amount": 20},
        ]
    )

    out = parse(raw, "b", REF, base_ts=0)

    assert [t.direction for t in out] == ["in", "out"]


def test_relative_dates_and_currency_symbols_are_resolved():
    raw = json.dumps([{"date": "yesterday", "description": "Croissant", "amount": "€4.20"}])

    (tx,) = parse(raw, "b", REF, base_ts=0)

    assert tx.date == "2024-04-01"
    assert tx.currency == "EUR"


def test_parser_never_raises():
    for raw in (None, "", "   ", "not json at all", "{{{{", "[1, 2, 3]", '{"transactions": 5}'):
        assert parse(raw, "b", REF) == []


def test_repair_json_leaves_string_contents_alone():
    fixed = repair_json('{note: "a, b} // not a comment", amount: 3,}')

    assert json.loads(fixed) == {"note": "a, b} // not a comment", "amount": 3}


def test_load_json_lenient_accepts_any_shape():
    assert load_json_lenient('noise {"description": "Dinner"} noise') == {"description": "Dinner"}
    assert load_json_lenient("nothing here") is None
