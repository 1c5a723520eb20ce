import pytest

from chat_core.providers.mock_service import MockChatService


@pytest.mark.asyncio
async def test_stream_reply_reassembles_to_full_reply():
    svc = MockChatService(chunk_delay=0)
    chunks = [c async for c in svc.stream_reply("What is 2+2?", "tinyllama:latest", False)]
    assert len(chunks) > 1
    assert "".join(chunks) == svc.compose_reply("What is 2+2?", "tinyllama:latest", False)


@pytest.mark.asyncio
async def test_send_message_callbacks_complete_once():
    svc = MockChatService(chunk_delay=0)
    chunks, completed, errors = [], [], []
    await svc.send_message("hi", "qwen3:0.6b", True, chunks.append, completed.append, errors.append)
    assert completed == ["".join(chunks)]
    assert completed[0].startswith("Based on the uploaded documents")
    assert errors == []


@pytest.mark.asyncio
async def test_send_message_reports_error_instead_of_complete():
    class Broken(MockChatService):
        async def stream_reply(self, question, model_name, use_context, thread_id=None):
            yield "one "
            yield "two "
            raise RuntimeError("stream dropped")

    chunks, completed, errors = [], [], []
    await Broken(chunk_delay=0).send_message("hi", "m", False, chunks.append, completed.append, errors.append)
    assert chunks == ["one ", "two "]
    assert completed == []
    assert len(errors) == 1
    assert str(errors[0]) == "stream dropped"


@pytest.mark.asyncio
async def test_available_models_default_list():
    models = await MockChatService(chunk_delay=0).get_available_models()
    assert [m["id"] for m in models] == ["tinyllama:latest", "qwen3:0.6b", "smollm2:360m"]
