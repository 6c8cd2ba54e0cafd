"""Structured JSON logging shared by the workflow services."""

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


_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("novelforge_log_context", default={})

_TRUTHY = {"1", "true", "t", "yes", "y"}


class ContextFilter(logging.Filter):
    """Copy the fields bound by :func:`log_context` onto every record."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401 - inherited docstring
        for key, value in _LOG_CONTEXT.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        if getattr(record, "service", None) is None:
            record.service = self.service_name
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with workflow identifiers promoted to the top level."""

    _STANDARD_ATTRS = frozenset(
        logging.LogRecord("", 0, "", 0, "", (), None).__dict__
    ) | {"message", "asctime", "taskName"}

    _PROMOTED = (
        "service",
        "caller_id",
        "project_id",
        "book_id",
        "step",
        "job_kind",
        "job_id",
        "scope_id",
        "state",
        "route",
        "method",
        "status_code",
    )

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited docstring
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in self._PROMOTED:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = _coerce(value)

        for key, value in record.__dict__.items():
            if key in payload or key in self._STANDARD_ATTRS or key.startswith("_"):
                continue
            value = _coerce(value)
            if _is_json_safe(value):
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=True)


def _coerce(value: Any) -> Any:
    # str-valued enums (steps, job kinds, states) log as their wire value
    enum_value = getattr(value, "value", None)
    if isinstance(enum_value, str):
        return enum_value
    return value


def _is_json_safe(value: Any) -> bool:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True


def setup_logging(
    service_name: str,
    level: str | int = "INFO",
    *,
    capture_warnings: bool | None = None,
) -> None:
    """Route the root logger (and uvicorn's) through the JSON formatter.

    Safe to call more than once; each call rebuilds the handler set.
    """

    handlers = ["default"]
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": "novelforge_observability.logging.JsonFormatter"},
            },
            "filters": {
                "context": {
                    "()": "novelforge_observability.logging.ContextFilter",
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
                "uvicorn.error": {"handlers": handlers, "level": level, "propagate": False},
                "uvicorn.access": {"handlers": handlers, "level": level, "propagate": False},
            },
        }
    )

    if capture_warnings is None:
        capture_warnings = os.getenv("NOVELFORGE_CAPTURE_WARNINGS", "").strip().lower() in _TRUTHY
    if capture_warnings:
        logging.captureWarnings(True)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields to every log record emitted inside the block.

    Passing ``None`` for a key removes it for the duration of the block.
    """

    updated = dict(_LOG_CONTEXT.get())
    for key, value in kwargs.items():
        if value is None:
            updated.pop(key, None)
        else:
            updated[key] = _coerce(value)
    token = _LOG_CONTEXT.set(updated)
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


def current_log_context() -> Dict[str, Any]:
    return dict(_LOG_CONTEXT.get())
