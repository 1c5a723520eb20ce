"""Chat Core 顶层包。

该包提供聊天界面背后的会话同步引擎，
包括配置加载、领域模型、后端与流式模拟器适配、
编辑分支历史、流式增量累积以及发送/编辑交换的状态机编排。
"""

from chat_core.api.service import ChatService, get_default_service

__all__ = ["ChatService", "get_default_service"]
