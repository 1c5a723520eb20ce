"""会话同步引擎的统一数据模型。

- Thread: 一个会话（有序消息列表 + 身份 + 当前模型）。
- Message: 一条用户提问，二选一的形态：
    * 分支形态：edits 为非空元组，最后一个为当前权威问答；
    * legacy 形态：question / answer / model_name 直接挂在消息上。
- Edit: 分支历史中的一次问答，只追加、不删除、不重排。
- StreamState: 流式交换过程中的临时累积文本。

Message 与 Edit 都是不可变值；Thread 由 SessionStore 独占并负责全部字段赋值，
其 messages 每次变更都整体替换为新元组，因此旧快照始终保持稳定。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, Tuple
from uuid import uuid4


TEMP_THREAD_PREFIX = "temp_"
LOCAL_MESSAGE_PREFIX = "local_"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_temporary_thread_id() -> str:
    return f"{TEMP_THREAD_PREFIX}{uuid4().hex}"


def new_local_message_id() -> str:
    return f"{LOCAL_MESSAGE_PREFIX}{uuid4().hex}"


@dataclass(frozen=True)
class Edit:
    """分支历史中的一次问答。"""

    edit_id: str
    model_name: Optional[str]
    timestamp: str
    question: str
    answer: str


@dataclass(frozen=True)
class Message:
    """一条用户提问及其回答。

    edits 不为 None 时为分支形态，否则为 legacy 形态。
    """

    id: str
    edits: Optional[Tuple[Edit, ...]] = None
    question: Optional[str] = None
    answer: Optional[str] = None
    model_name: Optional[str] = None

    @property
    def is_branching(self) -> bool:
        return self.edits is not None

    @classmethod
    def legacy(
        cls,
        question: str,
        answer: str = "",
        model_name: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> "Message":
        return cls(
            id=message_id or new_local_message_id(),
            question=question,
            answer=answer,
            model_name=model_name,
        )

    @classmethod
    def branching(cls, edits: Tuple[Edit, ...], message_id: Optional[str] = None) -> "Message":
        return cls(id=message_id or new_local_message_id(), edits=tuple(edits))


@dataclass(eq=False)
class Thread:
    """一个会话。

    eq=False 使 Thread 以对象身份参与比较与哈希：
    推广（promotion）后 id 会变化，但仍是同一个会话对象。
    """

    id: str = field(default_factory=new_temporary_thread_id)
    temporary: bool = True
    model_name: Optional[str] = None
    messages: Tuple[Message, ...] = ()

    @property
    def latest_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    def find_message(self, message_id: str) -> Optional[Message]:
        for msg in self.messages:
            if msg.id == message_id:
                return msg
        return None


@dataclass
class StreamState:
    """单次流式交换的累积状态，完成或出错后直接丢弃。"""

    target_thread_id: str
    text: str = ""
    active: bool = True


class ExchangeState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    AWAITING_BACKEND = "awaiting_backend"
    COMMITTING = "committing"
    FAILED = "failed"


class DispatchMode(str, Enum):
    """一次交换的完成方式：直连后端，或本地流式模拟。"""

    BACKEND = "backend"
    SIMULATED = "simulated"


@dataclass(frozen=True)
class CommitPayload:
    """派发分支交给 COMMITTING 阶段的结果。

    - messages: 提交后会话应持有的完整消息列表。
    - model_name: 本次交换使用的模型，提交时写回会话。
    """

    messages: Tuple[Message, ...]
    model_name: Optional[str] = None


@dataclass(frozen=True)
class ExchangeEvent:
    """ExchangeCoordinator 对外发布的可观察事件。

    kind:
        - "state": 状态机迁移，state 为新状态。
        - "partial": 流式增量，text 为当前累积文本（仅用于展示，不写入会话）。
    """

    kind: Literal["state", "partial"]
    thread_id: str
    state: ExchangeState
    text: str = ""
