import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from kb_chat.config.settings import settings


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self._redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact_content:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(cfg=settings) -> logging.Logger:
    """挂载 JSON 文件 handler。重复调用时按新配置更新或替换已有 handler。"""

    logger = logging.getLogger("kb_chat")
    logger.setLevel(cfg.log_level)
    log_dir = Path(cfg.log_dir)
    log_path = os.path.abspath(log_dir / "kb_chat.log")
    for h in list(logger.handlers):
        if not getattr(h, "_kb_chat_handler", False):
            continue
        if h.baseFilename == log_path:
            h.setLevel(cfg.log_level)
            h.setFormatter(JsonFormatter(cfg.log_redact_content))
            return logger
        logger.removeHandler(h)
        h.close()
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setLevel(cfg.log_level)
    fh.setFormatter(JsonFormatter(cfg.log_redact_content))
    fh._kb_chat_handler = True  # type: ignore[attr-defined]
    logger.addHandler(fh)
    return logger


def get_logger(name: str) -> logging.Logger:
    """返回 kb_chat 下的子 logger，共享同一个 JSON 文件 handler。"""

    return logger.getChild(name)


logger = setup_logger()
