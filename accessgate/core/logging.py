"""JSON line logging shared by the API and the delivery workers."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="")

# Fields lifted from ``extra=`` into the JSON line when present.
EXTRA_KEYS = (
    "account_id",
    "job_id",
    "job_kind",
    "attempt",
    "worker_id",
    "path",
    "method",
    "status_code",
    "duration_ms",
)

# Chatty third-party loggers kept at WARNING unless LOG_LEVEL is DEBUG.
NOISY_LOGGERS = ("uvicorn.access", "httpx")


class JsonLogFormatter(logging.Formatter):
    """One compact JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = CORRELATION_ID_CTX.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id

        payload.update(
            {
                key: getattr(record, key)
                for key in EXTRA_KEYS
                if getattr(record, key, None) not in (None, "")
            }
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Route the root logger to stdout as JSON lines. Called once per process."""
    normalized_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(normalized_level)
    root_logger.addHandler(handler)
    if normalized_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def set_correlation_id(correlation_id: str) -> None:
    CORRELATION_ID_CTX.set(correlation_id)


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[None]:
    """Tag every record logged inside the block, then restore the previous id."""
    token = CORRELATION_ID_CTX.set(correlation_id)
    try:
        yield
    finally:
        CORRELATION_ID_CTX.reset(token)
