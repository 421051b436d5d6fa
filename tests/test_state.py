from __future__ import annotations

from ledger_chat.models import (
    CorrectionClarification,
    DirectionClarification,
    DuplicateConfirmation,
    SplitBillShare,
)
from ledger_chat.state import ConversationState


def _split() -> SplitBillShare:
    return SplitBillShare(
        total=60.0, currency="USD", original_message="split $60", date="2024-04-02", description="Dinner"
    )


def test_setting_a_context_replaces_the_previous_one():
    state = ConversationState()

    state.set_direction_clarification(["a:1"])
    state.set_split_bill(_split())

    assert isinstance(state.pending, SplitBillShare)
    assert state.pending_of(DirectionClarification) is None
    assert state.pending_of(SplitBillShare) == _split()


def test_every_setter_keeps_exactly_one_context():
    state = ConversationState()
    setters = [
        lambda: state.set_direction_clarification(["a:1"]),
        lambda: state.set_split_bill(_split()),
        lambda: state.set_correction_clarification(
            CorrectionClarification("fix it", "amount", "5", ("a:1", "a:2"), ("Tea", "Cake"))
        ),
        lambda: state.set_duplicate_confirmation([]),
    ]
    kinds = (DirectionClarification, SplitBillShare, CorrectionClarification, DuplicateConfirmation)

    for setter, kind in zip(setters, kinds):
        setter()
        active = [k for k in kinds if state.pending_of(k) is not None]
        assert active == [kind]


def test_setting_a_context_drops_the_correction_memo():
    state = ConversationState()
    state.set_memo("Paid $5 for tea", "batch-1")

    state.set_direction_clarification(["batch-1:0"])

    assert state.memo is None


def test_clear_pending_keeps_the_memo_but_clear_all_drops_everything():
    state = ConversationState()
    state.set_split_bill(_split())
    state.set_memo("Paid $5 for tea", "batch-1")
    state.set_last_correction_target("batch-1:0")

    state.clear_pending()
    assert state.pending is None
    assert state.memo is not None

    state.clear_all()
    assert state.memo is None
    assert state.last_correction_txn_id is None
