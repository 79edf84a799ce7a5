# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Succession Contributors

"""Structured logging for Succession.

Lazy fetches run concurrently, so their log lines interleave. Each fetch runs
inside :func:`log_context`, which binds a correlation id along with the
identity and scope being fetched. Both formatters attach that context to every
line emitted inside it:

- :class:`JSONFormatter` as ``correlation_id`` / ``identity`` / ``scope`` keys
- :class:`StandardFormatter` as a short ``[cid identity@scope]`` prefix
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

# Third-party loggers that are too chatty below WARNING
QUIET_LOGGERS = ("aiohttp", "asyncio")


@dataclass(frozen=True)
class LogContext:
    """What a block of log lines is about."""

    correlation_id: str
    identity: str | None = None
    scope: str | None = None

    def as_fields(self) -> dict[str, str]:
        fields = {"correlation_id": self.correlation_id}
        if self.identity:
            fields["identity"] = self.identity
        if self.scope:
            fields["scope"] = self.scope
        return fields

    def prefix(self) -> str:
        label = self.correlation_id[:8]
        if self.identity:
            label += f" {self.identity[:8]}"
        if self.scope:
            label += f"@{self.scope}"
        return f"[{label}] "


_log_context: ContextVar[LogContext | None] = ContextVar("succession_log_context", default=None)


def get_log_context() -> LogContext | None:
    return _log_context.get()


def get_correlation_id() -> str | None:
    context = _log_context.get()
    return context.correlation_id if context is not None else None


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def log_context(
    identity: str | None = None,
    scope: str | None = None,
    correlation_id: str | None = None,
) -> Generator[LogContext, None, None]:
    """Bind a log context for the enclosed block.

    Example:
        with log_context(identity=pubkey, scope=group_id):
            logger.info("Fetching migrations")
    """
    context = LogContext(correlation_id or generate_correlation_id(), identity, scope)
    token = _log_context.set(context)
    try:
        yield context
    finally:
        _log_context.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = get_log_context()
        if context is not None:
            entry.update(context.as_fields())

        if record.levelno >= logging.WARNING:
            entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry)


class StandardFormatter(logging.Formatter):
    """Human-readable lines for terminals, with the level coloured."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # Other handlers share the record
        record = logging.makeLogRecord(record.__dict__)

        context = get_log_context()
        if context is not None:
            prefix = context.prefix()
            if self.use_colors:
                prefix = f"{self.DIM}{prefix}{self.RESET}"
            record.msg = prefix + str(record.msg)

        if self.use_colors:
            color = self.LEVEL_COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def _use_json(log_format: str) -> bool:
    log_format = log_format.lower()
    if log_format in ("json", "text"):
        return log_format == "json"
    # Unset: JSON unless attached to a terminal
    return not sys.stderr.isatty()


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install Succession's handlers on the root logger.

    Arguments left as ``None`` come from ``SUCCESSION_LOG_LEVEL``,
    ``SUCCESSION_LOG_FORMAT`` and ``SUCCESSION_LOG_FILE``. The log file, if
    any, always receives JSON.
    """
    from .config import get_config

    config = get_config()

    level = config.log_level if level is None else level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if json_format is None:
        json_format = _use_json(config.log_format)
    log_file = config.log_file if log_file is None else log_file

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if json_format else StandardFormatter())
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
