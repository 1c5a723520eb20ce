"""流式增量累积器。

一个实例服务一个会话，同一时刻最多持有一个 StreamState。
不做重排或去重：分片按来源发出的顺序直接拼接。
"""

from typing import Optional

from chat_core.domain.exceptions import AlreadyStreaming, NotStreaming
from chat_core.domain.models import StreamState


class StreamAssembler:
    def __init__(self) -> None:
        self._state: Optional[StreamState] = None
        self.last_abort_reason: Optional[str] = None

    @property
    def active(self) -> bool:
        return self._state is not None and self._state.active

    @property
    def partial_text(self) -> str:
        return self._state.text if self._state is not None else ""

    def start(self, thread_id: str) -> StreamState:
        if self._state is not None:
            raise AlreadyStreaming(
                code="ALREADY_STREAMING",
                message=f"stream already active for thread {self._state.target_thread_id}",
                thread_id=thread_id,
            )
        self._state = StreamState(target_thread_id=thread_id)
        self.last_abort_reason = None
        return self._state

    def append_chunk(self, text: str) -> int:
        state = self._require()
        state.text += text
        return len(state.text)

    def finish(self) -> str:
        state = self._require()
        self._state = None
        state.active = False
        return state.text

    def abort(self, reason: str) -> None:
        if self._state is not None:
            self._state.active = False
        self._state = None
        self.last_abort_reason = reason

    def _require(self) -> StreamState:
        if self._state is None:
            raise NotStreaming(code="NOT_STREAMING", message="no active stream")
        return self._state
