"""对外 API 服务模块。

把存储、协调器、后端客户端、模拟器与模型注册表装配在一起，
并以字典快照的形式向渲染层暴露只读状态。
"""

from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from chat_core.config.settings import settings
from chat_core.domain.models import DispatchMode, ExchangeEvent, Message, Thread
from chat_core.engine.coordinator import ExchangeCoordinator, Listener
from chat_core.engine.session_store import SessionStore
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import create_backend, create_registry, create_simulator
from chat_core.providers.base import BackendService
from chat_core.providers.mock_service import MockChatService
from chat_core.providers.registry import ModelRegistry


class ChatService:
    """聊天界面背后的会话服务。

    - store: 会话状态唯一持有者。
    - coordinator: 发送/编辑交换的编排者。
    - registry: 可选模型列表。
    """

    def __init__(
        self,
        backend: Optional[BackendService] = None,
        simulator: Optional[MockChatService] = None,
        registry: Optional[ModelRegistry] = None,
        dispatch_mode: Optional[str] = None,
    ):
        self.backend = backend or create_backend()
        self.simulator = simulator or create_simulator()
        self.registry = registry or create_registry()
        self.store = SessionStore(self.backend)
        self.coordinator = ExchangeCoordinator(
            store=self.store,
            backend=self.backend,
            simulator=self.simulator,
            registry=self.registry,
            dispatch_mode=DispatchMode(dispatch_mode or settings.dispatch_mode),
            fallback_answer=settings.fallback_answer,
        )
        self.use_context = settings.use_context

    # ---- 会话 ----

    def new_thread(self, model_name: Optional[str] = None) -> Dict[str, Any]:
        thread = self.store.create_thread(model_name or self.registry.default_model())
        return self.snapshot(thread.id)

    def current_thread_id(self) -> Optional[str]:
        current = self.store.current
        return current.id if current is not None else None

    def select_model(self, thread_id: str, model_name: str) -> Dict[str, Any]:
        self.store.set_model(self.store.get(thread_id), model_name)
        return self.snapshot(thread_id)

    def set_dispatch_mode(self, mode: str) -> None:
        self.coordinator.dispatch_mode = DispatchMode(mode)
        logger.info("Dispatch mode changed", extra={"extra": {"mode": self.coordinator.dispatch_mode.value}})

    async def refresh_models(self) -> List[Dict[str, str]]:
        models = await self.registry.refresh(self.simulator)
        return [{"id": m.id, "name": m.name} for m in models]

    # ---- 交换 ----

    async def send(self, thread_id: str, question: str, model_name: Optional[str] = None) -> Dict[str, Any]:
        """发送问题，返回交换结束后的快照。

        后端模式下临时会话会被推广，旧 ID 随即失效；
        调用方应改用返回快照中的 id。accepted 为 False 表示请求被丢弃。
        """
        thread = self.store.get(thread_id)
        accepted = await self.coordinator.send(
            thread,
            question,
            model_name=model_name,
            use_context=self.use_context,
        )
        return self._result(thread, accepted)

    def begin_edit(self, thread_id: str, message_id: str) -> str:
        return self.coordinator.begin_edit(self.store.get(thread_id), message_id)

    def cancel_edit(self, thread_id: str) -> None:
        self.coordinator.cancel_edit(self.store.get(thread_id))

    async def submit_edit(
        self,
        thread_id: str,
        new_question: str,
        message_id: Optional[str] = None,
        model_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """提交编辑；未指定 message_id 时使用 begin_edit 标记的消息。"""

        thread = self.store.get(thread_id)
        target = message_id or self.coordinator.editing_message_id(thread)
        if not target:
            return self._result(thread, False)
        accepted = await self.coordinator.submit_edit(thread, target, new_question, model_name=model_name)
        return self._result(thread, accepted)

    def on_event(self, listener: Listener) -> Callable[[], None]:
        """订阅协调器事件（状态迁移与流式增量）。"""

        return self.coordinator.add_listener(listener)

    def _result(self, thread: Thread, accepted: bool) -> Dict[str, Any]:
        # thread.id 在推广后已是后端 ID
        result = self.snapshot(thread.id)
        result["accepted"] = accepted
        return result

    # ---- 快照 ----

    def snapshot(self, thread_id: str) -> Dict[str, Any]:
        """获取会话的只读快照，供渲染层使用。

        Returns:
            包含会话身份、消息列表、当前流式文本与加载状态的字典
        """
        thread = self.store.get(thread_id)
        snap: Thread = self.store.snapshot(thread)
        return {
            "id": snap.id,
            "temporary": snap.temporary,
            "model_name": snap.model_name,
            "messages": [_message_to_dict(m) for m in snap.messages],
            "partial_text": self.coordinator.partial_text(thread),
            "is_loading": self.coordinator.is_busy(thread),
            "state": self.coordinator.state(thread).value,
            "editing_message_id": self.coordinator.editing_message_id(thread),
        }


def _message_to_dict(message: Message) -> Dict[str, Any]:
    if message.is_branching:
        return {"id": message.id, "edits": [asdict(e) for e in message.edits]}
    return {
        "id": message.id,
        "question": message.question,
        "answer": message.answer,
        "model_name": message.model_name,
    }


def describe_event(event: ExchangeEvent) -> Dict[str, Any]:
    return {"kind": event.kind, "thread_id": event.thread_id, "state": event.state.value, "text": event.text}


_service: Optional[ChatService] = None


def get_default_service() -> ChatService:
    """获取默认的会话服务实例（单例）。"""
    global _service
    if _service is None:
        _service = ChatService()
    return _service
