"""测试 ChatService 装配与快照。"""

import pytest

from chat_core.api.service import ChatService
from chat_core.domain.exceptions import InvalidState
from chat_core.providers.backend_client import BackendClient
from chat_core.providers.mock_service import MockChatService
from chat_core.providers.registry import ModelRegistry


class SilentBackend:
    """不应被调用的后端：模拟模式下只允许纯映射。"""

    async def create_thread(self):
        raise AssertionError("backend should not be called in simulated mode")

    async def create_message(self, *a):
        raise AssertionError("backend should not be called in simulated mode")

    async def create_message_edit(self, *a):
        raise AssertionError("backend should not be called in simulated mode")

    async def get_conversation(self, thread_id):
        raise AssertionError("backend should not be called in simulated mode")

    def transform_conversation(self, conversation):
        return BackendClient(None).transform_conversation(conversation)


def _service():
    return ChatService(
        backend=SilentBackend(),
        simulator=MockChatService(chunk_delay=0),
        registry=ModelRegistry(),
        dispatch_mode="simulated",
    )


@pytest.mark.asyncio
async def test_simulated_conversation_snapshot():
    svc = _service()
    thread = svc.new_thread()
    assert thread["temporary"] is True
    assert thread["model_name"] == "tinyllama:latest"
    assert svc.current_thread_id() == thread["id"]

    events = []
    remove = svc.on_event(events.append)
    result = await svc.send(thread["id"], "What is 2+2?")
    assert result["accepted"] is True

    snap = svc.snapshot(thread["id"])
    assert snap["is_loading"] is False
    assert snap["state"] == "idle"
    assert snap["partial_text"] == ""
    assert len(snap["messages"]) == 1
    msg = snap["messages"][0]
    assert msg["question"] == "What is 2+2?"
    assert "What is 2+2?" in msg["answer"]
    assert any(e.kind == "partial" for e in events)
    remove()
    seen = len(events)
    await svc.send(thread["id"], "again")
    assert len(events) == seen


@pytest.mark.asyncio
async def test_edit_flow_through_service():
    svc = _service()
    thread_id = svc.new_thread()["id"]
    await svc.send(thread_id, "first question")
    message_id = svc.snapshot(thread_id)["messages"][0]["id"]

    assert svc.begin_edit(thread_id, message_id) == "first question"
    assert svc.snapshot(thread_id)["editing_message_id"] == message_id
    assert (await svc.submit_edit(thread_id, "edited question"))["accepted"]

    snap = svc.snapshot(thread_id)
    assert snap["messages"][0]["question"] == "edited question"
    assert snap["editing_message_id"] is None
    assert (await svc.submit_edit(thread_id, "no target"))["accepted"] is False


@pytest.mark.asyncio
async def test_select_model_and_refresh():
    svc = _service()
    thread_id = svc.new_thread()["id"]
    assert svc.select_model(thread_id, "smollm2:360m")["model_name"] == "smollm2:360m"
    models = await svc.refresh_models()
    assert models[0] == {"id": "tinyllama:latest", "name": "TinyLlama"}
    svc.set_dispatch_mode("backend")
    assert svc.coordinator.dispatch_mode.value == "backend"


class RecordingBackend(SilentBackend):
    """后端模式用的内存后端：推广后分配 t-1。"""

    def __init__(self):
        self.messages = []

    async def create_thread(self):
        return {"thread_id": "t-1"}

    async def create_message(self, thread_id, question, answer, model_name):
        self.messages.append(
            {
                "message_id": f"msg-{len(self.messages) + 1}",
                "edits": [
                    {
                        "edit_id": "edit-1",
                        "model_name": model_name,
                        "timestamp": "2024-01-01T00:00:00Z",
                        "question": question,
                        "answer": answer,
                    }
                ],
            }
        )

    async def get_conversation(self, thread_id):
        return {"thread_id": thread_id, "messages": list(self.messages)}


@pytest.mark.asyncio
async def test_backend_send_returns_promoted_thread_id():
    svc = ChatService(
        backend=RecordingBackend(),
        simulator=MockChatService(chunk_delay=0),
        registry=ModelRegistry(),
        dispatch_mode="backend",
    )
    temp_id = svc.new_thread()["id"]

    result = await svc.send(temp_id, "Hi")

    assert result["accepted"] is True
    assert result["id"] == "t-1"
    assert result["temporary"] is False
    assert svc.snapshot(result["id"])["messages"][0]["edits"][0]["question"] == "Hi"
    again = await svc.send(result["id"], "Again")
    assert [m["edits"][0]["question"] for m in again["messages"]] == ["Hi", "Again"]
    with pytest.raises(InvalidState):
        svc.snapshot(temp_id)
