"""会话同步引擎。

- edit_branch: 单条消息的只追加编辑历史。
- stream_assembler: 单次流式交换的增量文本累积。
- session_store: 会话状态的唯一持有者与变更入口。
- coordinator: 一次发送/编辑交换的状态机编排。
"""

from chat_core.engine.edit_branch import EditBranchManager
from chat_core.engine.stream_assembler import StreamAssembler
from chat_core.engine.session_store import SessionStore
from chat_core.engine.coordinator import ExchangeCoordinator

__all__ = ["EditBranchManager", "StreamAssembler", "SessionStore", "ExchangeCoordinator"]
