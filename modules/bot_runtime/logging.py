from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

from modules.common.logging import sanitize_text, sanitize_value

LOGGER_NAME = "auction_bot"

STANDARD_LOG_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_text(record.getMessage()),
        }

        for key, value in record.__dict__.items():
            if key in STANDARD_LOG_FIELDS or key.startswith("_"):
                continue
            if key in {"message", "asctime"}:
                continue
            payload[key] = sanitize_value(value)

        if record.exc_info:
            payload["exception"] = sanitize_text(self.formatException(record.exc_info))

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(level: str | None = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel((level or os.getenv("LOG_LEVEL") or "INFO").upper())

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False

    return logger
