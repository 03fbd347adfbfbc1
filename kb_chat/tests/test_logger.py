import json
import logging

from kb_chat.config.settings import settings
from kb_chat.infrastructure.logging.logger import JsonFormatter, get_logger, setup_logger


def _record(msg, **extra):
    record = logging.LogRecord("kb_chat.test", logging.INFO, __file__, 1, msg, None, None)
    if extra:
        record.extra = extra
    return record


class Cfg:
    def __init__(self, log_dir, log_level="INFO", log_redact_content=False):
        self.log_dir = str(log_dir)
        self.log_level = log_level
        self.log_redact_content = log_redact_content


def _kb_handlers(logger):
    return [h for h in logger.handlers if getattr(h, "_kb_chat_handler", False)]


def test_json_formatter_includes_structured_fields():
    line = JsonFormatter().format(_record("Calling provider", trace_id="tr-1", message_count=3))
    payload = json.loads(line)
    assert payload["msg"] == "Calling provider"
    assert payload["level"] == "INFO"
    assert payload["trace_id"] == "tr-1"
    assert payload["message_count"] == 3
    assert payload["ts"].endswith("Z")


def test_json_formatter_redacts_content():
    payload = json.loads(JsonFormatter(redact_content=True).format(_record("x" * 200)))
    assert len(payload["msg"]) == 64


def test_setup_logger_is_idempotent(tmp_path):
    try:
        logger = setup_logger(Cfg(tmp_path / "logs"))
        count = len(logger.handlers)
        assert setup_logger(Cfg(tmp_path / "logs")) is logger
        assert len(logger.handlers) == count
        assert len(_kb_handlers(logger)) == 1
        assert get_logger("orchestrator").name == "kb_chat.orchestrator"
    finally:
        setup_logger(settings)


def test_setup_logger_applies_later_settings(tmp_path):
    try:
        logger = setup_logger(Cfg(tmp_path / "cli_logs", log_level="DEBUG", log_redact_content=True))
        get_logger("cli").debug("hello " + "y" * 100)
        for h in _kb_handlers(logger):
            h.flush()

        log_file = tmp_path / "cli_logs" / "kb_chat.log"
        assert log_file.exists()
        payload = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert payload["level"] == "DEBUG"
        assert payload["msg"].startswith("hello ")
        assert len(payload["msg"]) == 64
        assert len(_kb_handlers(logger)) == 1
    finally:
        setup_logger(settings)
