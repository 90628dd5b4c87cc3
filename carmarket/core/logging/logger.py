"""
CarMarket Logging Subsystem

Purpose
-------
Structured logging for the cache layer and the process hosting it. Records
are handed to a bounded queue and written by a listener thread, so cache
calls on the event loop never wait on console I/O.

Output
------
- JSON lines in production or when ``LOG_JSON`` is set.
- Colored text on a development TTY, plain text otherwise.
- Fields passed as ``extra={...}`` land under the JSON ``extra`` key.
- ``LogContext`` fields (route, operation, correlation id) are attached to
  every record emitted inside the block, including from child tasks.

Dependencies
------------
- carmarket.core.config.config.Config
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

from carmarket.core.config.config import Config

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-32s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
QUEUE_MAX_SIZE = 10_000

# Fields ContextFilter always sets; "N/A" means not bound.
CONTEXT_FIELDS = ("correlation_id", "component", "operation", "route")

_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _log_level() -> int:
    return getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO)


def _use_json() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return bool(Config.LOG_JSON)


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the bound ``LogContext`` fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, context.get(field) or "N/A")
        if record.component == "N/A":
            record.component = record.name.split(".", 1)[0]
        for key, value in context.items():
            if key not in CONTEXT_FIELDS and not hasattr(record, key):
                setattr(record, key, value)
        return True


class ColoredFormatter(logging.Formatter):
    COLORS: Dict[str, str] = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    """One JSON object per record; unknown record attributes go to ``extra``."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, "N/A"):
                data[field] = value

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
            and key not in CONTEXT_FIELDS
            and not key.startswith("_")
        }
        if extra:
            data["extra"] = extra

        return json.dumps(data, ensure_ascii=False, default=str)


class DroppingQueueHandler(QueueHandler):
    """Never blocks: a full queue drops the record with a note on stderr."""

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            sys.stderr.write("CarMarket logging queue full; dropping log record.\n")


# ============================================================================
# Setup / Teardown
# ============================================================================

_queue_listener: Optional[QueueListener] = None


def _build_console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_log_level())

    if _use_json():
        handler.setFormatter(JSONFormatter())
    elif Config.LOG_COLORS and sys.stdout.isatty():
        handler.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging() -> None:
    """Install the queue handler on the root logger. Idempotent."""
    global _queue_listener

    root = logging.getLogger()
    if _queue_listener is not None:
        return

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(QUEUE_MAX_SIZE)
    _queue_listener = QueueListener(
        log_queue, _build_console_handler(), respect_handler_level=True
    )
    _queue_listener.start()

    queue_handler = DroppingQueueHandler(log_queue)
    queue_handler.setLevel(_log_level())
    # Filters on the root logger skip records from child loggers.
    queue_handler.addFilter(ContextFilter())

    root.handlers.clear()
    root.addHandler(queue_handler)
    root.setLevel(_log_level())

    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging initialized",
        extra={"environment": Config.ENVIRONMENT, "json": _use_json()},
    )


def shutdown_logging() -> None:
    """Flush queued records and detach the handlers."""
    global _queue_listener

    if _queue_listener is None:
        return

    listener, _queue_listener = _queue_listener, None
    listener.stop()

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, DroppingQueueHandler):
            root.removeHandler(handler)
            handler.close()
    for handler in listener.handlers:
        handler.flush()
        handler.close()


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind request/operation fields to every log record emitted inside a block.

    Works as both a sync and an async context manager:

    >>> async with LogContext(route="/api/listings", operation="list"):
    ...     await accessor.get("listings:{}")

    Fields of an enclosing context are kept unless overridden.
    """

    def __init__(
        self,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        route: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        fields = {
            "component": component,
            "operation": operation,
            "route": route,
            "correlation_id": correlation_id,
            **extra,
        }
        self.fields: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        context = {**_log_context.get(), **self.fields}
        context.setdefault("correlation_id", uuid.uuid4().hex[:8])
        self._token = _log_context.set(context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)

    @staticmethod
    def current() -> Dict[str, Any]:
        """Fields bound in the running context."""
        return dict(_log_context.get())


setup_logging()
