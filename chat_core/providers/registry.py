"""可选模型注册表。

模型列表由外部来源（目前是模拟器）提供，拉取失败时保留上一次的列表。
会话未指定模型时使用列表中的第一个。
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

from chat_core.infrastructure.logging.logger import logger


@dataclass(frozen=True)
class ModelOption:
    """单个可选模型。"""

    id: str
    name: str


DEFAULT_MODELS: Sequence[ModelOption] = (
    ModelOption(id="tinyllama:latest", name="TinyLlama"),
    ModelOption(id="qwen3:0.6b", name="Qwen 0.6B"),
    ModelOption(id="smollm2:360m", name="SmoLLM2 360M"),
)


class ModelRegistry:
    def __init__(self, models: Optional[Iterable[ModelOption]] = None):
        self._models: List[ModelOption] = list(models or DEFAULT_MODELS)

    @classmethod
    def from_ids(cls, model_ids: Iterable[str]) -> "ModelRegistry":
        known = {m.id: m for m in DEFAULT_MODELS}
        return cls(known.get(mid, ModelOption(id=mid, name=mid)) for mid in model_ids)

    @property
    def models(self) -> List[ModelOption]:
        return list(self._models)

    def default_model(self) -> str:
        return self._models[0].id

    def resolve(self, model_name: Optional[str]) -> str:
        return model_name or self.default_model()

    async def refresh(self, source: Any) -> List[ModelOption]:
        """从 source.get_available_models() 刷新列表；失败或为空时保留旧列表。"""

        try:
            raw = await source.get_available_models()
        except Exception as exc:
            logger.error(f"Failed to fetch models: {exc}", extra={"extra": {"error": str(exc)}})
            return self.models
        fetched = [
            ModelOption(id=str(item["id"]), name=str(item.get("name") or item["id"]))
            for item in raw or []
            if item.get("id")
        ]
        if fetched:
            self._models = fetched
        return self.models
