"""Utilities for configuring structured logging and the collection log channel."""

from __future__ import annotations

import itertools
import json
import logging
import sys
import threading
import traceback
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from .config import settings


_LOG_RECORD_RESERVED_KEYS = {
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
    "message",
    "asctime",
}


def serialize_record(record: logging.LogRecord) -> Dict[str, Any]:
    """Convert a log record into a JSON-friendly payload."""
    created_at = datetime.fromtimestamp(record.created, tz=timezone.utc)
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger_name": record.name,
        "message": record.getMessage(),
        "created_at": created_at.isoformat(),
    }

    if record.exc_info:
        payload["traceback"] = "".join(traceback.format_exception(*record.exc_info))
    elif record.exc_text:
        payload["traceback"] = record.exc_text

    extra = {
        key: value
        for key, value in record.__dict__.items()
        if key not in _LOG_RECORD_RESERVED_KEYS and not key.startswith("_")
    }
    if extra:
        sanitized: Dict[str, Any] = {}
        for key, value in extra.items():
            try:
                json.dumps(value)
                sanitized[key] = value
            except (TypeError, ValueError):
                sanitized[key] = repr(value)
        payload["extra"] = sanitized

    return payload


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - standard format signature
        return json.dumps(serialize_record(record), ensure_ascii=False)


class LogChannel(logging.Handler):
    """Logging handler that keeps recent records for the control API.

    Entries carry a monotonically increasing ``seq`` so that pollers can ask
    for everything after the last entry they have seen.
    """

    def __init__(self, capacity: int = 1000, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._entries: Deque[Dict[str, Any]] = deque(maxlen=max(1, capacity))
        self._counter = itertools.count(1)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401 - standard emit signature
        try:
            payload = serialize_record(record)
        except Exception:  # pylint: disable=broad-except
            self.handleError(record)
            return
        with self._entries_lock:
            payload["seq"] = next(self._counter)
            self._entries.append(payload)

    def entries(self, after: int = 0, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return buffered entries with ``seq`` greater than ``after``."""
        with self._entries_lock:
            selected = [entry for entry in self._entries if entry["seq"] > after]
        if limit is not None:
            selected = selected[:limit]
        return selected

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


log_channel = LogChannel(capacity=settings.log_buffer_size)

_configured = False


def configure_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Install the stream handler and the log channel on the root logger once."""
    global _configured

    if _configured:
        return

    level_name = (level or settings.log_level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    stream_handler = logging.StreamHandler(sys.stderr)
    if (log_format or settings.log_format).lower() == "json":
        stream_handler.setFormatter(JsonFormatter())
    else:
        stream_handler.setFormatter(
            logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s  %(message)s")
        )

    log_channel.setLevel(numeric_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(stream_handler)
    root_logger.addHandler(log_channel)
    _configured = True
