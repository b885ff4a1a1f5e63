"""
Structured logging for ttlkv.

Records carry two kinds of structure:
- context: the store path and current operation, set for a block with
  log_context() and captured when the record is created
- fields: keyword arguments passed to a log call, e.g.
  ``logger.debug("Insert conflict", key=key)``

setup_logging() routes records to a rich console handler and, when a log
file is given, to a JSON-lines file. The library never configures
handlers on its own: until setup_logging() is called (the CLI does),
records go to a NullHandler on the "ttlkv" logger.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import orjson
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

ROOT_LOGGER = "ttlkv"

logging.getLogger(ROOT_LOGGER).addHandler(logging.NullHandler())

_context_var: ContextVar[dict[str, str]] = ContextVar("ttlkv_log_context", default={})

# Keyword arguments that belong to logging itself, not to the record's fields
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def current_context() -> dict[str, str]:
    """Return a copy of the active logging context."""
    return dict(_context_var.get())


@contextmanager
def log_context(
    store: str | None = None,
    operation: str | None = None,
) -> Generator[None, None, None]:
    """Add store/operation to the logging context for the duration of a block.

    Nested blocks inherit the outer values and may override them.
    """
    updated = dict(_context_var.get())
    if store is not None:
        updated["store"] = store
    if operation is not None:
        updated["operation"] = operation

    token = _context_var.set(updated)
    try:
        yield
    finally:
        _context_var.reset(token)


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that attaches the logging context and keyword fields."""

    def __init__(self, logger: logging.Logger) -> None:
        super().__init__(logger, {})

    def log(self, level: int, msg: object, *args: Any, **kwargs: Any) -> None:
        if not self.isEnabledFor(level):
            return
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in _LOGGING_KWARGS}
        extra = kwargs.setdefault("extra", {})
        extra["fields"] = fields
        extra["context"] = current_context()
        self.logger.log(level, msg, *args, **kwargs)


def _record_context(record: logging.LogRecord) -> dict[str, str]:
    return getattr(record, "context", None) or {}


class JSONFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, context and fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_record_context(record),
        }
        fields = getattr(record, "fields", None)
        if fields:
            payload["extra"] = fields
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(payload, default=str).decode("utf-8")


class ContextRichHandler(RichHandler):
    """Rich console handler that prefixes the level with the store and operation."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        context = _record_context(record)

        prefix = Text()
        if "store" in context:
            store = context["store"]
            prefix.append(f" {Path(store).name or store}", style="dim")
        if "operation" in context:
            prefix.append(f" {context['operation']}", style="cyan")

        return level_text + prefix if prefix else level_text


def setup_logging(
    log_level: str = "WARNING",
    log_file: str | Path | None = None,
    console_output: bool = True,
) -> None:
    """Configure the "ttlkv" logger.

    Args:
        log_level: Console threshold and logger level (DEBUG ... CRITICAL).
        log_file: JSON-lines file to append every record to. The logger
            level drops to DEBUG so the file receives store activity even
            when the console stays quiet.
        console_output: Whether to log to stderr through rich.
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger(ROOT_LOGGER)
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG if log_file else level)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        rich_handler.setLevel(level)
        root_logger.addHandler(rich_handler)

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())

    root_logger.propagate = False


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger under the "ttlkv" namespace."""
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return ContextLogger(logging.getLogger(name))
