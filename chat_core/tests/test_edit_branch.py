import pytest

from chat_core.domain.exceptions import EmptyHistory, UnsupportedVariant
from chat_core.domain.models import Edit, Message
from chat_core.engine.edit_branch import EditBranchManager


def _edit(n: int, question: str = "q", answer: str = "a") -> Edit:
    return Edit(edit_id=f"e{n}", model_name="tinyllama:latest", timestamp="2024-01-01T00:00:00Z", question=question, answer=answer)


def test_append_edit_grows_history_without_mutating():
    mgr = EditBranchManager()
    original = Message.branching((_edit(1), _edit(2)), message_id="m1")
    updated = mgr.append_edit(original, _edit(3))
    assert [e.edit_id for e in updated.edits] == ["e1", "e2", "e3"]
    assert [e.edit_id for e in original.edits] == ["e1", "e2"]
    assert updated.id == original.id
    assert mgr.latest_edit(updated) == updated.edits[-1]


def test_append_edit_rejects_legacy_message():
    mgr = EditBranchManager()
    legacy = Message.legacy("hi", "hello")
    with pytest.raises(UnsupportedVariant):
        mgr.append_edit(legacy, _edit(1))


def test_latest_edit_empty_history():
    mgr = EditBranchManager()
    with pytest.raises(EmptyHistory):
        mgr.latest_edit(Message(id="m1", edits=()))


def test_new_edit_numbering_and_current_question():
    mgr = EditBranchManager()
    msg = Message.branching((_edit(1, question="What is 2+2?"),))
    edit = mgr.new_edit(msg, "What is 3+3?", "6", "qwen3:0.6b")
    assert edit.edit_id == "mock_edit_2"
    assert edit.timestamp.endswith("Z")
    assert mgr.new_edit(None, "q", "", None).edit_id == "mock_edit_1"
    assert mgr.current_question(msg) == "What is 2+2?"
    assert mgr.current_question(Message.legacy("legacy q")) == "legacy q"


def test_answer_latest_fills_unanswered_edit_in_place():
    mgr = EditBranchManager()
    pending = Message.branching((_edit(1, "earlier", "first"), _edit(2, "next", "")), message_id="m1")
    answered = mgr.answer_latest(pending, "second", "qwen3:0.6b")
    assert [(e.question, e.answer) for e in answered.edits] == [("earlier", "first"), ("next", "second")]
    assert answered.edits[-1].edit_id == "e2"
    assert answered.edits[-1].model_name == "qwen3:0.6b"
    assert pending.edits[-1].answer == ""

    again = mgr.answer_latest(answered, "third", "qwen3:0.6b")
    assert len(again.edits) == 3
    assert again.edits[-1].question == "next"
