"""Centralised JSON logging configuration."""

from __future__ import annotations

import json
import logging
import logging.config
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator


_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("storybook_log_context", default={})


class ContextFilter(logging.Filter):
    """Inject contextual fields captured via :func:`log_context`."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401 - inherited docstring
        context = _LOG_CONTEXT.get()
        for key, value in context.items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        if getattr(record, "service", None) is None:
            record.service = self.service_name
        return True


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    _RESERVED = {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }

    _WHITELIST = (
        "service",
        "book_id",
        "batch_id",
        "stage",
        "generator",
        "attempt",
        "delay_seconds",
        "page_number",
        "index",
        "route",
        "method",
        "status_code",
        "latency_ms",
    )

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited docstring
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._WHITELIST:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        for key, value in record.__dict__.items():
            if key in self._RESERVED or key in payload or key.startswith("_"):
                continue
            if self._is_json_safe(value):
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=True, default=str)

    @staticmethod
    def _is_json_safe(value: Any) -> bool:
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            return False
        return True


def setup_logging(service_name: str, level: str | int | None = None) -> None:
    """Configure JSON logging on stdout for the current process.

    ``level`` defaults to ``LOG_LEVEL`` from the environment, then ``INFO``.
    Calling it again replaces the handler configuration.
    """

    level = level or os.getenv("LOG_LEVEL", "INFO")
    handlers = ["default"]
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": "storybook_observability.logging.JsonFormatter"},
            },
            "filters": {
                "context": {
                    "()": "storybook_observability.logging.ContextFilter",
                    "service_name": service_name,
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": sys.stdout,
                    "formatter": "json",
                    "filters": ["context"],
                }
            },
            "root": {"level": level, "handlers": handlers},
            "loggers": {
                "uvicorn": {"handlers": handlers, "level": level, "propagate": False},
                "uvicorn.access": {"handlers": handlers, "level": level, "propagate": False},
                "httpx": {"level": "WARNING"},
            },
        }
    )


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Temporarily bind fields (``book_id``, ``batch_id``, ``stage``...) to every log record."""

    updated = dict(_LOG_CONTEXT.get())
    for key, value in kwargs.items():
        if value is None:
            updated.pop(key, None)
        else:
            updated[key] = value
    token = _LOG_CONTEXT.set(updated)
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)
