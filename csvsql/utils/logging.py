"""Structured logging for the CSV SQL tool.

Every event is logged as a JSON object (``{"event": ..., **fields}``). The file handler
keeps those objects as JSON lines; the console handler renders them as
``event key=value`` with long values such as SQL text shortened.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, MutableMapping

DEFAULT_LOG_LEVEL = os.getenv("CSVSQL_LOG_LEVEL", "INFO")
DEFAULT_LOG_DIR = Path(os.getenv("CSVSQL_LOG_DIR", "data/logs"))
LOG_FILE_NAME = "csvsql.log"
CONSOLE_VALUE_LIMIT = 120


def configure_logging(log_level: str | None = None, log_path: Path | None = None) -> None:
    """Send JSON lines to ``log_path`` and readable event lines to stdout."""
    level = getattr(logging, (log_level or DEFAULT_LOG_LEVEL).upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter())

    destination = log_path or DEFAULT_LOG_DIR / LOG_FILE_NAME
    destination.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(destination, encoding="utf-8")
    file_handler.setFormatter(JsonFormatter())

    logging.basicConfig(level=level, handlers=[console_handler, file_handler])


def get_logger(name: str) -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def _format_event(event: str, extra: MutableMapping[str, Any] | None = None) -> str:
    payload: dict[str, Any] = {"event": event}
    if extra:
        payload.update(extra)
    return json.dumps(payload, default=str)


def _decode_event(message: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(message)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _shorten(value: Any, limit: int = CONSOLE_VALUE_LIMIT) -> str:
    text = " ".join(str(value).split())
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        stamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
        data: dict[str, Any] = {
            "timestamp": f"{stamp}.{int(record.msecs):03d}Z",
            "logger": record.name,
            "severity": record.levelname,
        }
        message = record.getMessage()
        payload = _decode_event(message)
        if payload is None:
            data["message"] = message
        else:
            event = payload.pop("event", None)
            if event is not None:
                data["event"] = event
            data.update(payload)

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class ConsoleFormatter(logging.Formatter):
    """One line per record; structured events become ``event key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = time.strftime("%H:%M:%S", time.localtime(record.created))
        message = record.getMessage()
        payload = _decode_event(message)
        if payload is not None:
            event = payload.pop("event", None)
            fields = " ".join(f"{key}={_shorten(payload[key])}" for key in sorted(payload))
            message = " ".join(part for part in (str(event or ""), fields) if part) or message

        output = f"{timestamp} | {record.levelname:<8} | {record.name} | {message}"
        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)
        return output


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **extra: Any) -> None:
    logger.log(level, _format_event(event, extra))


def log_warning_event(logger: logging.Logger, event: str, **extra: Any) -> None:
    log_event(logger, event, level=logging.WARNING, **extra)


@contextmanager
def log_timing(logger: logging.Logger, event: str, **extra: Any):
    """Log ``<event>.start`` then ``<event>.complete`` or ``<event>.error`` with elapsed ms."""
    start = time.perf_counter()
    log_event(logger, f"{event}.start", **extra)
    try:
        yield
    except Exception:
        elapsed = (time.perf_counter() - start) * 1000.0
        logger.exception(_format_event(f"{event}.error", {**extra, "elapsed_ms": round(elapsed, 3)}))
        raise
    elapsed = (time.perf_counter() - start) * 1000.0
    log_event(logger, f"{event}.complete", **extra, elapsed_ms=round(elapsed, 3))
