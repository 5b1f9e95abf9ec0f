# quotegate/logging_conf.py
from __future__ import annotations

import json
import logging
import os
from logging.config import dictConfig
from typing import Any

REQUEST_FIELDS = ("method", "path", "status", "duration_s", "client")


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs to stdout."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for extra_key in ("module", "funcName", "symbol", "intent"):
            val = getattr(record, extra_key, None)
            if val:
                payload[extra_key] = val
        # Request-line fields from the timing middleware
        for extra_key in REQUEST_FIELDS:
            if hasattr(record, extra_key):
                payload[extra_key] = getattr(record, extra_key)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging() -> None:
    """Configure JSON logging for quotegate + uvicorn, suppress duplicate access logs."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    dict_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": JsonFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
        "loggers": {
            "uvicorn": {"level": log_level, "handlers": ["console"], "propagate": False},
            "uvicorn.error": {"level": log_level, "handlers": ["console"], "propagate": False},
            # The timing middleware emits its own request line
            "uvicorn.access": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "fastapi": {"level": log_level, "handlers": ["console"], "propagate": False},
            "starlette": {"level": log_level, "handlers": ["console"], "propagate": False},
            # httpx logs every request at INFO, including the upstream key in the query
            "httpx": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "quotegate": {"level": log_level, "handlers": ["console"], "propagate": False},
            "request": {"level": log_level, "handlers": ["console"], "propagate": False},
        },
    }

    dictConfig(dict_config)
