"""外部协作方的抽象接口。

引擎只依赖这些协议，不直接依赖具体的 HTTP 客户端或模拟器实现：

- BackendService: 持久化后端（创建会话/消息/编辑，拉取会话）。
- ChunkSource: 流式模拟器，以有序异步迭代器逐段产出回答文本。
- AnswerGenerator: 后端模式下生成一次性完整回答。
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from chat_core.domain.models import Message


class BackendService(Protocol):
    async def create_thread(self) -> Dict[str, Any]:
        """创建新会话，返回包含 thread_id 的字典。"""
        ...

    async def create_message(self, thread_id: str, question: str, answer: str, model_name: str) -> None:
        ...

    async def create_message_edit(self, message_id: str, question: str, answer: str, model_name: str) -> None:
        ...

    async def get_conversation(self, thread_id: str) -> Dict[str, Any]:
        ...

    def transform_conversation(self, conversation: Dict[str, Any]) -> Dict[str, List[Message]]:
        """纯映射：后端会话 DTO -> {"messages": [Message, ...]}。"""
        ...


class ChunkSource(Protocol):
    def stream_reply(
        self,
        question: str,
        model_name: str,
        use_context: bool,
        thread_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """逐段产出回答；正常结束即完成，抛异常即失败。"""
        ...


class AnswerGenerator(Protocol):
    def answer(self, question: str, model_name: str) -> str:
        ...

    def edit_answer(self, question: str, model_name: str) -> str:
        ...


class TemplateAnswerGenerator:
    """占位回答生成器：真实实现中由 LLM 生成。"""

    def answer(self, question: str, model_name: str) -> str:
        return (
            f'This is a response to: "{question}". '
            f"In a real implementation, this would be generated by an LLM model ({model_name})."
        )

    def edit_answer(self, question: str, model_name: str) -> str:
        return f'This is a response to the edited question: "{question}". Generated by {model_name}.'
