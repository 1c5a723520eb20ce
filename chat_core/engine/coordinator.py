"""一次发送/编辑交换的编排。

每个会话一台状态机：

    IDLE -> DISPATCHING -> (STREAMING | AWAITING_BACKEND) -> COMMITTING -> IDLE
    任意非 IDLE 状态 -> FAILED -> IDLE

同一会话同一时刻至多一个交换，忙时的新请求直接丢弃而不是排队。
派发模式（后端 / 模拟）在交换开始时选定一次，由对应的 dispatch 分支
实现相同的 (question) -> CommitPayload 契约；提交统一经由 SessionStore。

失败分两类：
- StateError（调用方 bug）：清理后原样抛出；
- 其他异常（后端/模拟器运行期失败）：包装为 ExchangeFailed，
  写入固定兜底回答后回到 IDLE。
无论哪条路径，finally 都保证会话最终回到 IDLE。
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from chat_core.domain.exceptions import ExchangeFailed, InvalidState, StateError
from chat_core.domain.models import (
    CommitPayload,
    DispatchMode,
    ExchangeEvent,
    ExchangeState,
    Message,
    Thread,
)
from chat_core.engine.edit_branch import EditBranchManager
from chat_core.engine.session_store import SessionStore
from chat_core.engine.stream_assembler import StreamAssembler
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import AnswerGenerator, BackendService, ChunkSource, TemplateAnswerGenerator
from chat_core.providers.registry import ModelRegistry


_TRANSITIONS: Dict[ExchangeState, Tuple[ExchangeState, ...]] = {
    ExchangeState.IDLE: (ExchangeState.DISPATCHING,),
    ExchangeState.DISPATCHING: (ExchangeState.STREAMING, ExchangeState.AWAITING_BACKEND, ExchangeState.FAILED),
    ExchangeState.STREAMING: (ExchangeState.COMMITTING, ExchangeState.FAILED),
    ExchangeState.AWAITING_BACKEND: (ExchangeState.COMMITTING, ExchangeState.FAILED),
    ExchangeState.COMMITTING: (ExchangeState.IDLE, ExchangeState.FAILED),
    ExchangeState.FAILED: (ExchangeState.IDLE,),
}

Listener = Callable[[ExchangeEvent], None]


@dataclass
class ExchangeContext:
    """一次交换的输入。message_id 为本次交换的目标消息。"""

    thread: Thread
    question: str
    model_name: str
    message_id: str
    use_context: bool = False
    assembler: Optional[StreamAssembler] = None


class BackendDispatch:
    """后端分支：后端视图即真相，提交时整体替换为重新拉取的会话。"""

    wait_state = ExchangeState.AWAITING_BACKEND

    def __init__(self, store: SessionStore, backend: BackendService, answers: AnswerGenerator):
        self._store = store
        self._backend = backend
        self._answers = answers

    async def send(self, ctx: ExchangeContext) -> CommitPayload:
        thread = await self._store.ensure_persisted(ctx.thread)
        answer = self._answers.answer(ctx.question, ctx.model_name)
        await self._backend.create_message(thread.id, ctx.question, answer, ctx.model_name)
        return await self._refetch(thread, ctx.model_name)

    async def edit(self, ctx: ExchangeContext) -> CommitPayload:
        answer = self._answers.edit_answer(ctx.question, ctx.model_name)
        await self._backend.create_message_edit(ctx.message_id, ctx.question, answer, ctx.model_name)
        return await self._refetch(ctx.thread, ctx.model_name)

    async def _refetch(self, thread: Thread, model_name: str) -> CommitPayload:
        conversation = await self._backend.get_conversation(thread.id)
        transformed = self._backend.transform_conversation(conversation)
        return CommitPayload(messages=tuple(transformed["messages"]), model_name=model_name)


class SimulatedDispatch:
    """模拟分支：流式增量只用于展示，完成后才写回目标消息。"""

    wait_state = ExchangeState.STREAMING

    def __init__(
        self,
        source: ChunkSource,
        edits: EditBranchManager,
        publish: Callable[[Thread, str], None],
    ):
        self._source = source
        self._edits = edits
        self._publish = publish

    async def send(self, ctx: ExchangeContext) -> CommitPayload:
        thread = ctx.thread
        assembler = ctx.assembler
        assembler.start(thread.id)
        async for chunk in self._source.stream_reply(ctx.question, ctx.model_name, ctx.use_context, thread.id):
            assembler.append_chunk(chunk)
            self._publish(thread, assembler.partial_text)
        full = assembler.finish()
        self._publish(thread, "")

        target = thread.find_message(ctx.message_id)
        if target is None:
            messages = thread.messages + (Message.legacy(ctx.question, full, ctx.model_name),)
        elif target.is_branching:
            messages = _substitute(thread.messages, self._edits.answer_latest(target, full, ctx.model_name))
        else:
            messages = _substitute(thread.messages, replace(target, answer=full, model_name=ctx.model_name))
        return CommitPayload(messages=messages, model_name=ctx.model_name)

    async def edit(self, ctx: ExchangeContext) -> CommitPayload:
        # 模拟模式下编辑问题不重新生成回答，沿用上一条 edit 的 answer
        target = ctx.thread.find_message(ctx.message_id)
        previous = self._edits.latest_edit(target)
        edit = self._edits.new_edit(target, ctx.question, previous.answer, ctx.model_name)
        messages = _substitute(ctx.thread.messages, self._edits.append_edit(target, edit))
        return CommitPayload(messages=messages, model_name=ctx.model_name)


def _substitute(messages: Tuple[Message, ...], updated: Message) -> Tuple[Message, ...]:
    return tuple(updated if m.id == updated.id else m for m in messages)


class ExchangeCoordinator:
    def __init__(
        self,
        store: SessionStore,
        backend: BackendService,
        simulator: ChunkSource,
        registry: Optional[ModelRegistry] = None,
        answers: Optional[AnswerGenerator] = None,
        dispatch_mode: DispatchMode = DispatchMode.BACKEND,
        fallback_answer: str = "I'm sorry, I encountered an error processing your request.",
    ):
        self._store = store
        self._registry = registry or ModelRegistry()
        self._edits = EditBranchManager()
        self._fallback_answer = fallback_answer
        self.dispatch_mode = DispatchMode(dispatch_mode)
        self._arms: Dict[DispatchMode, Any] = {
            DispatchMode.BACKEND: BackendDispatch(store, backend, answers or TemplateAnswerGenerator()),
            DispatchMode.SIMULATED: SimulatedDispatch(simulator, self._edits, self._publish_partial),
        }
        self._states: Dict[Thread, ExchangeState] = {}
        self._assemblers: Dict[Thread, StreamAssembler] = {}
        self._editing: Dict[Thread, str] = {}
        self._errors: Dict[Thread, ExchangeFailed] = {}
        self._listeners: List[Listener] = []

    # ---- 只读视图 ----

    def state(self, thread: Thread) -> ExchangeState:
        return self._states.get(thread, ExchangeState.IDLE)

    def is_busy(self, thread: Thread) -> bool:
        return self.state(thread) is not ExchangeState.IDLE

    def partial_text(self, thread: Thread) -> str:
        assembler = self._assemblers.get(thread)
        return assembler.partial_text if assembler is not None else ""

    def last_error(self, thread: Thread) -> Optional[ExchangeFailed]:
        return self._errors.get(thread)

    def editing_message_id(self, thread: Thread) -> Optional[str]:
        return self._editing.get(thread)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ---- 发送 ----

    async def send(
        self,
        thread: Thread,
        question: str,
        *,
        model_name: Optional[str] = None,
        use_context: bool = False,
    ) -> bool:
        """发送一条新问题。空白问题或会话忙时直接丢弃并返回 False。"""

        self._store.require(thread)
        if not question or not question.strip():
            return False
        if self.is_busy(thread):
            self._log(logging.INFO, "Dropped send while exchange in progress", thread)
            return False

        mode = self.dispatch_mode
        model = self._registry.resolve(model_name or thread.model_name)
        pending = self._pending_message(thread, question)
        ctx = ExchangeContext(
            thread=thread,
            question=question,
            model_name=model,
            message_id=pending.id,
            use_context=use_context,
        )
        if mode is DispatchMode.SIMULATED:
            ctx.assembler = self._assemblers.setdefault(thread, StreamAssembler())

        def store_question() -> None:
            self._store.append_message(thread, pending)
            self._log(logging.INFO, "Stored user question", thread, message_id=pending.id, mode=mode.value)

        await self._run_exchange(ctx, mode, lambda arm: arm.send(ctx), self._recover_send, before=store_question)
        return True

    def _pending_message(self, thread: Thread, question: str) -> Message:
        latest = thread.latest_message
        if latest is not None and latest.is_branching:
            return Message.branching((self._edits.new_edit(None, question, "", None),))
        return Message.legacy(question)

    # ---- 编辑 ----

    def begin_edit(self, thread: Thread, message_id: str) -> str:
        """标记 message_id 进入编辑，返回其当前问题文本。"""

        self._store.require(thread)
        message = thread.find_message(message_id)
        if message is None:
            raise InvalidState(code="MESSAGE_NOT_FOUND", message=f"unknown message {message_id!r}")
        self._editing[thread] = message_id
        return self._edits.current_question(message)

    def cancel_edit(self, thread: Thread) -> None:
        self._editing.pop(thread, None)

    async def submit_edit(
        self,
        thread: Thread,
        message_id: str,
        new_question: str,
        *,
        model_name: Optional[str] = None,
    ) -> bool:
        """提交编辑后的问题。

        分支消息：追加一条新 edit（后端模式由后端创建，模拟模式本地合成且沿用旧回答）。
        legacy 消息：直接改写 question 字段，不产生历史。
        """

        self._store.require(thread)
        if not new_question or not new_question.strip():
            return False
        message = thread.find_message(message_id)
        if message is None:
            self._log(logging.WARNING, "Edit target not found", thread, message_id=message_id)
            return False
        if self.is_busy(thread):
            self._log(logging.INFO, "Dropped edit while exchange in progress", thread, message_id=message_id)
            return False

        if not message.is_branching:
            self._store.replace_message(thread, replace(message, question=new_question))
            self._log(logging.INFO, "Updated legacy question in place", thread, message_id=message_id)
            self._clear_editing(thread, message_id)
            return True

        model = self._registry.resolve(model_name or thread.model_name)
        mode = self.dispatch_mode
        ctx = ExchangeContext(thread=thread, question=new_question, model_name=model, message_id=message_id)
        try:
            await self._run_exchange(ctx, mode, lambda arm: arm.edit(ctx), self._recover_edit)
        finally:
            self._clear_editing(thread, message_id)
        return True

    def _clear_editing(self, thread: Thread, message_id: str) -> None:
        if self._editing.get(thread) == message_id:
            del self._editing[thread]

    # ---- 状态机 ----

    async def _run_exchange(
        self,
        ctx: ExchangeContext,
        mode: DispatchMode,
        work: Callable[[Any], Any],
        recover: Callable[[ExchangeContext], None],
        before: Optional[Callable[[], None]] = None,
    ) -> None:
        thread = ctx.thread
        arm = self._arms[mode]
        self._transition(thread, ExchangeState.DISPATCHING)
        try:
            if before is not None:
                before()
            self._transition(thread, arm.wait_state)
            payload = await work(arm)
            self._transition(thread, ExchangeState.COMMITTING)
            self._commit(thread, payload)
        except StateError:
            self._transition(thread, ExchangeState.FAILED)
            raise
        except Exception as exc:
            failure = ExchangeFailed(
                code="EXCHANGE_FAILED",
                message=str(exc) or type(exc).__name__,
                http_status=getattr(exc, "http_status", 500),
                thread_id=thread.id,
                mode=mode.value,
            )
            self._errors[thread] = failure
            self._log(logging.ERROR, "Exchange failed", thread, mode=mode.value, error=failure.message)
            self._transition(thread, ExchangeState.FAILED)
            self._discard_stream(thread, failure.message)
            recover(ctx)
        finally:
            self._discard_stream(thread, "exchange ended")
            state = self.state(thread)
            if state not in (ExchangeState.IDLE, ExchangeState.COMMITTING, ExchangeState.FAILED):
                self._transition(thread, ExchangeState.FAILED)
            if self.state(thread) is not ExchangeState.IDLE:
                self._transition(thread, ExchangeState.IDLE)

    def _commit(self, thread: Thread, payload: CommitPayload) -> None:
        self._store.replace_messages(thread, payload.messages)
        if payload.model_name:
            self._store.set_model(thread, payload.model_name)
        self._errors.pop(thread, None)
        self._log(logging.INFO, "Committed exchange", thread, messages=len(payload.messages))

    def _recover_send(self, ctx: ExchangeContext) -> None:
        thread = ctx.thread
        current = thread.find_message(ctx.message_id)
        if current is None:
            self._store.append_message(
                thread, Message.legacy(ctx.question, self._fallback_answer, ctx.model_name)
            )
        elif current.is_branching:
            self._store.replace_message(
                thread, self._edits.answer_latest(current, self._fallback_answer, ctx.model_name)
            )
        else:
            self._store.replace_message(
                thread, replace(current, answer=self._fallback_answer, model_name=ctx.model_name)
            )

    def _recover_edit(self, ctx: ExchangeContext) -> None:
        thread = ctx.thread
        current = thread.find_message(ctx.message_id)
        if current is None:
            return
        edit = self._edits.new_edit(current, ctx.question, self._fallback_answer, ctx.model_name)
        self._store.replace_message(thread, self._edits.append_edit(current, edit))

    def _transition(self, thread: Thread, new_state: ExchangeState) -> None:
        current = self.state(thread)
        if new_state not in _TRANSITIONS[current]:
            raise InvalidState(
                code="INVALID_TRANSITION",
                message=f"{current.value} -> {new_state.value}",
                thread_id=thread.id,
            )
        if new_state is ExchangeState.IDLE:
            self._states.pop(thread, None)
        else:
            self._states[thread] = new_state
        self._log(logging.INFO, "Exchange state", thread, state=new_state.value)
        self._emit(ExchangeEvent(kind="state", thread_id=thread.id, state=new_state))

    def _publish_partial(self, thread: Thread, text: str) -> None:
        self._emit(ExchangeEvent(kind="partial", thread_id=thread.id, state=self.state(thread), text=text))

    def _discard_stream(self, thread: Thread, reason: str) -> None:
        assembler = self._assemblers.pop(thread, None)
        if assembler is not None and assembler.active:
            assembler.abort(reason)
            self._publish_partial(thread, "")

    def _emit(self, event: ExchangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.error(
                    f"Exchange listener failed: {exc}",
                    extra={"extra": {"thread_id": event.thread_id, "error": str(exc)}},
                )

    @staticmethod
    def _log(level: int, message: str, thread: Thread, **fields: Any) -> None:
        payload: Dict[str, Any] = {"thread_id": thread.id}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
