import pytest

from chat_core.domain.exceptions import AlreadyStreaming, NotStreaming
from chat_core.engine.stream_assembler import StreamAssembler


def test_chunks_are_concatenated_in_order():
    sa = StreamAssembler()
    sa.start("t1")
    lengths = [sa.append_chunk(c) for c in ["Hel", "lo, ", "world"]]
    assert lengths == [3, 7, 12]
    assert sa.partial_text == "Hello, world"
    assert sa.finish() == "Hello, world"
    assert not sa.active
    assert sa.partial_text == ""


def test_start_twice_fails():
    sa = StreamAssembler()
    sa.start("t1")
    with pytest.raises(AlreadyStreaming):
        sa.start("t1")


def test_finish_twice_fails():
    sa = StreamAssembler()
    sa.start("t1")
    sa.finish()
    with pytest.raises(NotStreaming):
        sa.finish()
    with pytest.raises(NotStreaming):
        sa.append_chunk("late")


def test_abort_discards_and_records_reason():
    sa = StreamAssembler()
    state = sa.start("t1")
    sa.append_chunk("partial")
    sa.abort("simulator down")
    assert sa.last_abort_reason == "simulator down"
    assert sa.partial_text == ""
    assert state.active is False
    # 丢弃后可以重新开始
    sa.start("t1")
    assert sa.active
