# src/datalayer/core/logging/builder.py
"""
Logging builder: create and apply a dictConfig logging configuration.

The data layer is a library, so nothing here runs at import time. The host
application calls `setup_logging(get_settings())` once at startup; library
modules only ever call `logging.getLogger(__name__)`.

Handler selection:

| `LOG_TO_STDOUT` | `LOG_DIR` set  | Active handlers                  |
| --------------- | -------------- | -------------------------------- |
| `true`          | doesn't matter | `console` + `error_console`      |
| `false`         | not set        | `console` + `error_console`      |
| `false`         | set            | `console` + `file` + `error_file`|
"""

from __future__ import annotations

from pathlib import Path
import logging
import logging.config

from ...utils.logging import get_project_name
from .formatters import JsonFormatter, ColorFormatter
from .filters import OperationIdFilter, RedactFilter
from .handlers import (
    get_console_handler,
    get_file_handler,
    get_error_file_handler,
    get_error_console_handler,
)

# Settings type only (avoid calling get_settings() here to prevent import-time side effects)
from ...config.settings import Settings


def _file_logging_enabled(settings: Settings) -> bool:
    return (not settings.LOG_TO_STDOUT) and bool(settings.LOG_DIR)


def make_dict_config(settings: Settings) -> dict:
    """
    Build the dictConfig mapping using the provided settings.

    The returned mapping includes:
      - formatters: "standard" (color/dev or plain) and "json"
      - filters: "operation_id", "redact"
      - handlers: console, (file/error_file) OR error_console depending on LOG_TO_STDOUT
      - loggers: root, datalayer, sqlalchemy.engine
    """
    formatters = {
        "standard": {
            # use ColorFormatter only in text mode
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(operation_id)s | %(message)s",
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": get_project_name(),
        },
    }

    filters = {
        "operation_id": {"()": OperationIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}

    if _file_logging_enabled(settings):
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers.keys()),
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            "datalayer": {
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            # SQL echo may contain row values; keep it off unless explicitly enabled
            "sqlalchemy.engine": {
                "level": "DEBUG" if settings.ENABLE_SQL_LOGGING else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(settings: Settings) -> None:
    """
    Initialize logging from settings.

    Steps:
      1. Ensure LOG_DIR exists when writing files.
      2. Apply dictConfig(make_dict_config(settings)).
      3. Register an OperationIdFilter on the root logger so %(operation_id)s is
         always resolvable, even for records handled outside our handlers.
    """
    if _file_logging_enabled(settings):
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))
    logging.getLogger().addFilter(OperationIdFilter())
