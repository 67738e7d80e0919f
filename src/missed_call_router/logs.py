"""JSON-lines logging for the webhook service."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

# Extras passed via ``logger.info(..., extra={...})`` that end up in every line.
EVENT_FIELDS = ("message_sid", "stage", "event", "error_code")


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in EVENT_FIELDS:
            payload[field] = getattr(record, field, None)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Route the package logger to stderr as JSON lines."""
    logger = logging.getLogger("missed_call_router")
    logger.setLevel(level.upper())
    logger.handlers.clear()

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)
    logger.propagate = False

    return logger
