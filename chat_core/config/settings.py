"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
优先级：初始化参数 > 环境变量 > .env > config.yaml。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FALLBACK_ANSWER = "I'm sorry, I encountered an error processing your request."


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 后端服务 ----
    backend_base_url: str = Field(
        default="http://localhost:8000/api",
        description="持久化后端服务的基础 URL",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 交换行为 ----
    dispatch_mode: str = Field(
        default="backend",
        description="默认派发模式：backend（后端持久化）或 simulated（本地流式模拟）",
    )
    available_models: List[str] = Field(
        default_factory=lambda: ["tinyllama:latest", "qwen3:0.6b", "smollm2:360m"],
        description="模型列表拉取失败时使用的默认模型 ID",
    )
    stream_chunk_delay: float = Field(
        default=0.05,
        ge=0.0,
        description="模拟器每个分片之间的间隔（秒）",
    )
    fallback_answer: str = Field(
        default=DEFAULT_FALLBACK_ANSWER,
        description="交换失败时插入会话的固定兜底回答",
    )
    use_context: bool = Field(default=False, description="模拟器是否带上下文文件（无文件上传时应保持关闭）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("dispatch_mode")
    @classmethod
    def validate_dispatch_mode(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"backend", "simulated"}:
            raise ValueError(f"Unknown dispatch mode: {v!r}")
        return v

    @field_validator("available_models")
    @classmethod
    def validate_models(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("available_models must not be empty")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
