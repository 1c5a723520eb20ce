"""本地流式模拟器。

不依赖任何后端，按固定间隔逐段吐出一段合成回答，用于离线演示和测试。
对外提供两种消费方式：

- stream_reply: 有序异步迭代器（单消费者通道），正常结束即完成，抛异常即失败。
- send_message: 回调形式的适配层，on_chunk 触发零次或多次后，
  on_complete / on_error 恰好触发其一。
"""

import asyncio
import re
from typing import AsyncIterator, Callable, Dict, List, Optional

from chat_core.providers.registry import DEFAULT_MODELS


class MockChatService:
    name = "mock"

    def __init__(self, chunk_delay: float = 0.05, models: Optional[List[Dict[str, str]]] = None):
        self._chunk_delay = chunk_delay
        self._models = list(models or [{"id": m.id, "name": m.name} for m in DEFAULT_MODELS])

    async def get_available_models(self) -> List[Dict[str, str]]:
        await asyncio.sleep(0)
        return [dict(m) for m in self._models]

    def compose_reply(self, question: str, model_name: str, use_context: bool) -> str:
        prefix = "Based on the uploaded documents, " if use_context else ""
        return (
            f"{prefix}here is a simulated answer from {model_name} to your question: "
            f'"{question.strip()}". Switch to backend mode to persist this conversation.'
        )

    async def stream_reply(
        self,
        question: str,
        model_name: str,
        use_context: bool,
        thread_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        reply = self.compose_reply(question, model_name, use_context)
        # 按“单词 + 尾随空白”切分，拼接后与原文完全一致
        for piece in re.findall(r"\S+\s*", reply):
            await asyncio.sleep(self._chunk_delay)
            yield piece

    async def send_message(
        self,
        question: str,
        model_name: str,
        use_context: bool,
        on_chunk: Callable[[str], None],
        on_complete: Callable[[str], None],
        on_error: Callable[[Exception], None],
        thread_id: Optional[str] = None,
    ) -> None:
        parts: List[str] = []
        try:
            async for chunk in self.stream_reply(question, model_name, use_context, thread_id):
                parts.append(chunk)
                on_chunk(chunk)
        except Exception as exc:
            on_error(exc)
            return
        on_complete("".join(parts))
