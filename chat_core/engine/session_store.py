"""会话状态存储。

SessionStore 是 Thread / Message / Edit 数据的唯一持有者和唯一变更入口：

- 所有变更都整体替换 thread.messages 元组（copy-on-write），旧快照不受影响；
- 每次变更完成后同步通知观察者（渲染层）；
- ensure_persisted 是临时 ID 退役的唯一位置，推广后旧 ID 不再可解析。
"""

import asyncio
from copy import copy
from typing import Callable, Dict, Iterable, List, Optional

from chat_core.domain.exceptions import InvalidState
from chat_core.domain.models import Message, Thread
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import BackendService


Observer = Callable[[Thread], None]


class SessionStore:
    def __init__(self, backend: BackendService):
        self._backend = backend
        self._threads: Dict[str, Thread] = {}
        self._observers: List[Observer] = []
        self._promotion_locks: Dict[Thread, asyncio.Lock] = {}
        self._current_id: Optional[str] = None

    # ---- 会话管理 ----

    def create_thread(self, model_name: Optional[str] = None) -> Thread:
        thread = Thread(model_name=model_name)
        self._threads[thread.id] = thread
        self._current_id = thread.id
        logger.info("Created temporary thread", extra={"extra": {"thread_id": thread.id}})
        self._notify(thread)
        return thread

    def get(self, thread_id: str) -> Thread:
        thread = self._threads.get(thread_id)
        if thread is None:
            raise InvalidState(code="THREAD_NOT_FOUND", message=f"unknown thread {thread_id!r}")
        return thread

    def find(self, thread_id: Optional[str]) -> Optional[Thread]:
        if thread_id is None:
            return None
        return self._threads.get(thread_id)

    def threads(self) -> List[Thread]:
        return list(self._threads.values())

    @property
    def current(self) -> Optional[Thread]:
        return self.find(self._current_id)

    def select(self, thread_id: str) -> Thread:
        thread = self.get(thread_id)
        self._current_id = thread.id
        self._notify(thread)
        return thread

    # ---- 推广 ----

    async def ensure_persisted(self, thread: Thread) -> Thread:
        """把临时会话推广为后端会话，每个会话至多执行一次。"""

        self.require(thread)
        if not thread.temporary:
            return thread
        lock = self._promotion_locks.setdefault(thread, asyncio.Lock())
        async with lock:
            # 等锁期间可能已被其他调用方推广
            if not thread.temporary:
                return thread
            created = await self._backend.create_thread()
            old_id = thread.id
            new_id = str(created["thread_id"])
            del self._threads[old_id]
            thread.id = new_id
            thread.temporary = False
            self._threads[new_id] = thread
            if self._current_id == old_id:
                self._current_id = new_id
        self._promotion_locks.pop(thread, None)
        logger.info("Promoted temporary thread", extra={"extra": {"old_id": old_id, "thread_id": new_id}})
        self._notify(thread)
        return thread

    # ---- 消息变更 ----

    def append_message(self, thread: Optional[Thread], message: Message) -> Thread:
        self.require(thread)
        thread.messages = thread.messages + (message,)
        self._notify(thread)
        return thread

    def replace_messages(self, thread: Optional[Thread], messages: Iterable[Message]) -> Thread:
        """整体替换消息列表（会话级 last-write-wins，不做字段级合并）。"""

        self.require(thread)
        thread.messages = tuple(messages)
        self._notify(thread)
        return thread

    def replace_message(self, thread: Optional[Thread], message: Message) -> Thread:
        """按 id 替换单条消息，其余消息保持原对象。"""

        self.require(thread)
        for idx, existing in enumerate(thread.messages):
            if existing.id == message.id:
                thread.messages = thread.messages[:idx] + (message,) + thread.messages[idx + 1:]
                self._notify(thread)
                return thread
        raise InvalidState(
            code="MESSAGE_NOT_FOUND",
            message=f"message {message.id!r} not in thread {thread.id!r}",
        )

    def set_model(self, thread: Optional[Thread], model_name: str) -> Thread:
        self.require(thread)
        thread.model_name = model_name
        self._notify(thread)
        return thread

    # ---- 观察者 ----

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def snapshot(self, thread: Thread) -> Thread:
        """返回脱离存储的只读副本（messages 为不可变元组，浅拷贝即可）。"""

        return copy(thread)

    def _notify(self, thread: Thread) -> None:
        snap = self.snapshot(thread)
        for observer in list(self._observers):
            try:
                observer(snap)
            except Exception as exc:
                logger.error(
                    f"Session observer failed: {exc}",
                    extra={"extra": {"thread_id": thread.id, "error": str(exc)}},
                )

    def require(self, thread: Optional[Thread]) -> None:
        if thread is None:
            raise InvalidState(code="INVALID_STATE", message="thread is undefined")
        if self._threads.get(thread.id) is not thread:
            raise InvalidState(
                code="THREAD_NOT_FOUND",
                message=f"thread {thread.id!r} is not owned by this store",
            )
