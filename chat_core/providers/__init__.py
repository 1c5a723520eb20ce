"""外部协作方集成层。

该包下的模块负责：
- 定义协作方抽象接口 (base)。
- 持久化后端的 HTTP 实现 (backend_client)。
- 本地流式模拟器 (mock_service)。
- 可选模型列表 (registry)。
"""

from chat_core.config.settings import settings
from chat_core.providers.backend_client import BackendClient
from chat_core.providers.base import BackendService, ChunkSource
from chat_core.providers.mock_service import MockChatService
from chat_core.providers.registry import ModelRegistry


def create_backend() -> BackendService:
    """根据配置创建后端客户端。"""

    return BackendClient(settings)


def create_simulator() -> MockChatService:
    """根据配置创建流式模拟器。"""

    return MockChatService(chunk_delay=settings.stream_chunk_delay)


def create_registry() -> ModelRegistry:
    return ModelRegistry.from_ids(settings.available_models)


__all__ = [
    "BackendService",
    "ChunkSource",
    "create_backend",
    "create_simulator",
    "create_registry",
]
