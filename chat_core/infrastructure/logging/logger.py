import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from chat_core.config.settings import settings

REDACT_LIMIT = 64


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return value[:REDACT_LIMIT]
    if isinstance(value, dict):
        return {k: _redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact(v) for v in value]
    return value


class JsonFormatter(logging.Formatter):
    """每条记录一行 JSON；extra={"extra": {...}} 的字段平铺进输出。"""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        extra = getattr(record, "extra", None)
        if settings.log_redact_content:
            # 问题文本等内容也会经 extra 落盘，一并截断
            msg = _redact(msg or "")
            extra = _redact(extra)
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        if isinstance(extra, dict):
            payload.update(extra)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("chat_core")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return logger
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "chat.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonFormatter())
    logger.addHandler(fh)
    return logger


logger = setup_logger()
