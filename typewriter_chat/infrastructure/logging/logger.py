import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional

from typewriter_chat.config.settings import settings

# 这些字段可能包含用户或模型文本，开启脱敏时一并截断
_CONTENT_FIELDS = ("content", "delta", "raw", "body")


def setup_logger(log_dir: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger("typewriter_chat")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return logger
    log_dir_path = Path(log_dir or settings.log_dir)
    log_dir_path.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir_path / "chat.log", encoding="utf-8")
    fh.setLevel(logging.INFO)

    class JsonFormatter(logging.Formatter):
        def format(self, record: logging.LogRecord) -> str:
            msg = record.getMessage()
            if settings.log_redact_content:
                msg = (msg or "")[:64]
            payload = {
                "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
                "level": record.levelname,
                "name": record.name,
                "msg": msg,
            }
            extra = getattr(record, "extra", None)
            if isinstance(extra, dict):
                for key, value in extra.items():
                    if settings.log_redact_content and key in _CONTENT_FIELDS and isinstance(value, str):
                        value = value[:64]
                    payload[key] = value
            return json.dumps(payload, ensure_ascii=False, default=str)

    fh.setFormatter(JsonFormatter())
    logger.addHandler(fh)
    return logger


logger = setup_logger()
