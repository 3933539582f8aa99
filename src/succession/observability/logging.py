"""Structured logging for election processes.

Every record carries the election it belongs to: the namespace, this
process's identity and, once registered, its candidate node. The values live
in context variables bound by the engine task, so log calls stay plain
`logger.info(...)`.

Usage:
    from succession.observability.logging import LogContext, configure_logging

    configure_logging(json_format=True, level="INFO")

    with LogContext(namespace="/election", identity="worker-1"):
        logger.info("Became leader")
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

namespace_var: contextvars.ContextVar[str] = contextvars.ContextVar("namespace", default="")
identity_var: contextvars.ContextVar[str] = contextvars.ContextVar("identity", default="")
candidate_var: contextvars.ContextVar[str] = contextvars.ContextVar("candidate", default="")

_CONTEXT_VARS: dict[str, contextvars.ContextVar[str]] = {
    "namespace": namespace_var,
    "identity": identity_var,
    "candidate": candidate_var,
}

# Attributes every LogRecord has; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _context() -> dict[str, str]:
    return {key: value for key, var in _CONTEXT_VARS.items() if (value := var.get())}


class JsonFormatter(logging.Formatter):
    """One JSON document per record.

    {"timestamp": "2026-01-10T12:34:56.789000+00:00", "level": "INFO",
     "logger": "succession.election.engine", "message": "Became leader (...)",
     "namespace": "/election", "identity": "worker-1",
     "candidate": "/election/candidate_0000000003"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(_context())

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        return orjson.dumps(entry, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Compact single-line format for terminals.

    12:34:56.789 INFO     engine       Became leader (...)  [candidate_0000000003]
    """

    LEVEL_COLORS = {
        "DEBUG": "\033[2m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        level = f"{record.levelname:<8}"
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"

        line = f"{clock} {level} {record.name.rsplit('.', 1)[-1]:<12} {record.getMessage()}"

        candidate = candidate_var.get()
        if candidate:
            line += f"  [{candidate.rsplit('/', 1)[-1]}]"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        json_format: JSON lines for log aggregation, else console format
        level: Root log level name
        use_colors: Color level names on a terminal (console format only)
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    # kazoo logs every reconnect attempt at INFO
    logging.getLogger("kazoo").setLevel(logging.WARNING)


class LogContext:
    """Bind election context variables for the duration of a block.

    Unknown keys are ignored.
    """

    def __init__(self, **values: str) -> None:
        self.values = values
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> LogContext:
        for key, value in self.values.items():
            var = _CONTEXT_VARS.get(key)
            if var is not None:
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
