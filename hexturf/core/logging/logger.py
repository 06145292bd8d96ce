"""
Logging for the territory engine.

Records are handed to a ``QueueHandler`` on the calling task and written by a
``QueueListener`` thread, so a capture holding row locks never waits on
stdout. Console output is JSON in production (or with ``LOG_JSON=true``)
and a one-line text format elsewhere.

Operation context (runner, activity, correlation id) is bound with
``LogContext`` and stamped onto every record emitted inside the block.
Fields passed as ``extra={...}`` land under ``"extra"`` in the JSON
document; their keys must not collide with ``LogRecord`` attributes
(``RESERVED_ATTRS``), which the stdlib rejects with ``KeyError``.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, Optional

from hexturf.core.config.config import Config

_log_context: ContextVar[Dict[str, Any]] = ContextVar("hexturf_log_context", default={})

CONTEXT_ATTRS = ("user_id", "activity_id", "operation", "component", "correlation_id")

RESERVED_ATTRS = frozenset(
    {
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "taskName", "message", "asctime",
    }
)

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(correlation_id)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ContextFilter(logging.Filter):
    """Copy the bound ``LogContext`` onto the record unless ``extra`` set it."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()
        for key in CONTEXT_ATTRS:
            if not hasattr(record, key):
                setattr(record, key, context.get(key, "-"))
        for key, value in context.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        document: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_ATTRS:
            value = getattr(record, key, "-")
            if value != "-":
                document[key] = value

        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in RESERVED_ATTRS and key not in CONTEXT_ATTRS and not key.startswith("_")
        }
        if extra:
            document["extra"] = extra

        return json.dumps(document, ensure_ascii=False, default=str)


def _use_json() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return Config.LOG_JSON


_listener: Optional[QueueListener] = None


def setup_logging(level: Optional[str] = None) -> None:
    """
    Route the root logger through a queue to the console. Idempotent.

    ``level`` overrides ``Config.LOG_LEVEL``.
    """
    global _listener

    if _listener is not None:
        return

    log_level = getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO)

    console = logging.StreamHandler(sys.stdout)
    if _use_json():
        console.setFormatter(JSONFormatter())
    else:
        console.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    records: "queue.Queue[logging.LogRecord]" = queue.Queue()
    _listener = QueueListener(records, console, respect_handler_level=True)
    _listener.start()

    handler = QueueHandler(records)
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for noisy in ("asyncio", "sqlalchemy.engine", "testcontainers"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={"environment": Config.ENVIRONMENT, "log_level": logging.getLevelName(log_level), "json": _use_json()},
    )


def shutdown_logging() -> None:
    """Flush queued records and detach the queue handler."""
    global _listener

    if _listener is None:
        return

    _listener.stop()
    _listener = None

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, QueueHandler):
            root.removeHandler(handler)
            handler.close()


def is_logging_initialized() -> bool:
    return _listener is not None


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind context to every record logged inside the block.

    Nested blocks inherit the outer context and keep its correlation id
    unless one is given.

    >>> async with LogContext(user_id=42, operation="apply_capture"):
    ...     logger.info("Capturing tiles")
    """

    def __init__(self, correlation_id: Optional[str] = None, **fields: Any) -> None:
        outer = _log_context.get()
        self.context: Dict[str, Any] = dict(outer)
        self.context.update({key: str(value) for key, value in fields.items() if value is not None})
        self.context["correlation_id"] = (
            correlation_id or outer.get("correlation_id") or uuid.uuid4().hex[:8]
        )
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


setup_logging()
