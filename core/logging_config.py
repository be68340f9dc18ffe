# core/logging_config.py

import logging
import json
from datetime import datetime, timezone
from core.config import LOG_LEVEL
from core.request_context import get_request_id

_RESERVED_ATTRS = frozenset((
    "args", "msg", "levelname", "levelno",
    "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread",
    "threadName", "processName", "process",
    "taskName", "name",
))


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": get_request_id(),
        }

        # If extra fields were passed
        for key, value in record.__dict__.items():
            if key not in log_record and key not in _RESERVED_ATTRS:
                log_record[key] = value
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


def setup_logging(level: str = LOG_LEVEL):
    # Prevent request headers (API keys) from being logged by HTTP libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)
