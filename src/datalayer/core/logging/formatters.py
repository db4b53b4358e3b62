# src/datalayer/core/logging/formatters.py

"""
Custom logging formatters.

  - JsonFormatter: structured JSON lines for log collectors. Includes the
    observability fields (service, env, version, operation_id) plus any
    `extra={...}` keys passed at the call site.

  - ColorFormatter: compact ANSI-coloured lines for local development consoles.

builder.py selects between them from settings.LOG_FORMAT.
"""

import json
import logging
from typing import Any
from logging import LogRecord
from ...utils.logging import get_project_version

PROJECT_VERSION = get_project_version()

# LogRecord attributes that are never treated as extras
_RESERVED = frozenset({
    "args", "msg", "levelname", "levelno", "name", "created", "msecs", "relativeCreated",
    "exc_info", "exc_text", "stack_info", "funcName", "module", "filename", "thread",
    "threadName", "process", "processName", "taskName",
})


class JsonFormatter(logging.Formatter):
    """
    Structured JSON formatter.

    Construction:
      - env: environment name (e.g., "development" | "production"); optional.
      - service: logical service name to include in logs (defaults to "datalayer").
      - datefmt: optional date format passed to logging.Formatter (used by formatTime).

    Never raises: values that json cannot encode are emitted via str().
    """

    def __init__(self, *, env: str | None = None, service: str = "datalayer", datefmt: str | None = None):
        super().__init__(datefmt=datefmt)
        self.env = env
        self.service = service

    def format(self, record: LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "pathname": record.pathname,
            "lineno": record.lineno,
            "operation_id": getattr(record, "operation_id", "-"),
            "service": self.service,
            "env": self.env,
            "version": PROJECT_VERSION,
        }

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)

        extras = {
            k: v
            for k, v in record.__dict__.items()
            if k not in log_record and not k.startswith("_") and k not in _RESERVED
        }

        for k, v in extras.items():
            try:
                json.dumps(v)
                log_record[k] = v
            except (TypeError, ValueError):
                log_record[k] = str(v)

        return json.dumps(log_record, ensure_ascii=False, default=str)


class ColorFormatter(logging.Formatter):
    """
    Development-friendly colored formatter.

    Line shape: TIMESTAMP | LEVEL | LOGGER_NAME | OPERATION_ID | MESSAGE
    """

    COLOR_CODES = {
        "DEBUG": "\033[1;36;47m",   # bold cyan on white
        "INFO": "\033[32m",         # green
        "WARNING": "\033[33m",      # yellow
        "ERROR": "\033[31m",        # red
        "CRITICAL": "\033[1;41m",   # bold on red
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)

    def format(self, record: LogRecord) -> str:
        color = self.COLOR_CODES.get(record.levelname, "")
        # colour only the level name
        reset = self.COLOR_CODES["RESET"]
        timestamp = self.formatTime(record, self.datefmt)

        base = (
            f"{timestamp} | {color}{record.levelname:<10}{reset} | "
            f"{record.name:<30} | "
            f"{getattr(record, 'operation_id', '-'):<12} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            base = base + "\n" + self.formatException(record.exc_info)

        return base
