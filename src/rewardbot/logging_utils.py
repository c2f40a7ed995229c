from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TextIO

from rewardbot.logging_context import get_logging_context
from rewardbot.security.redaction import redact_data

# (logger name, level when root is DEBUG, level otherwise, env override)
_THIRD_PARTY_LOGGERS = (
    ("httpx", logging.DEBUG, logging.WARNING, "HTTPX_LOG_LEVEL"),
    ("httpcore", logging.DEBUG, logging.WARNING, "HTTPCORE_LOG_LEVEL"),
)


def _json_default(value: object) -> object:
    if isinstance(value, Decimal):
        # amounts stay exact in the log line
        return format(value, "f")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per record: base fields, run/cycle context, then ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(get_logging_context())

        extras = getattr(record, "extra", None)
        if isinstance(extras, dict):
            payload.update(extras)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload.setdefault("error_type", type(exc).__name__)
            payload.setdefault("error_message", str(exc))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(redact_data(payload), default=_json_default)


def _level_from_name(raw: str | int | None, default: int) -> int:
    if isinstance(raw, int):
        return raw
    if raw is None or not str(raw).strip():
        return default
    resolved = logging.getLevelName(str(raw).strip().upper())
    return resolved if isinstance(resolved, int) else default


def setup_logging(level: str | int | None = None, *, stream: TextIO | None = None) -> None:
    """Route every logger through a single JSON handler on ``stream`` (stderr by default)."""
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)

    root_level = _level_from_name(
        level if level is not None else os.getenv("LOG_LEVEL"), logging.INFO
    )
    root.setLevel(root_level)

    for name, debug_level, default_level, env_name in _THIRD_PARTY_LOGGERS:
        fallback = debug_level if root_level <= logging.DEBUG else default_level
        logging.getLogger(name).setLevel(_level_from_name(os.getenv(env_name), fallback))
