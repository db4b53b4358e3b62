# src/datalayer/tests/test_logging/test_builder_setup.py
import logging

import pytest

from datalayer.core.logging.builder import make_dict_config, setup_logging
from datalayer.core.logging.filters import OperationIdFilter


# Create a minimal Settings-like object for testing
class DummySettings:
    LOG_FORMAT = "json"
    LOG_LEVEL = "INFO"
    LOG_TO_STDOUT = False
    LOG_DIR = None  # will be set in test
    LOG_MAX_BYTES = 1000
    LOG_BACKUP_COUNT = 1
    ENV = "development"
    ENABLE_SQL_LOGGING = False


@pytest.fixture
def restore_root_logging():
    """setup_logging() replaces root handlers; put the session's back afterwards."""
    root = logging.getLogger()
    handlers, filters, level = list(root.handlers), list(root.filters), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.filters[:] = filters
    root.setLevel(level)


def test_make_dict_config_contains_file_handlers(tmp_path):
    settings = DummySettings()
    settings.LOG_DIR = tmp_path
    cfg = make_dict_config(settings)

    assert set(cfg["handlers"]) == {"console", "file", "error_file"}
    assert cfg["handlers"]["file"]["filename"].endswith("datalayer.log")
    assert cfg["handlers"]["error_file"]["level"] == "ERROR"
    assert {"standard", "json"} <= set(cfg["formatters"])
    assert cfg["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"


def test_make_dict_config_stdout_only(tmp_path):
    settings = DummySettings()
    settings.LOG_DIR = tmp_path
    settings.LOG_TO_STDOUT = True
    settings.ENABLE_SQL_LOGGING = True

    cfg = make_dict_config(settings)

    assert set(cfg["handlers"]) == {"console", "error_console"}
    assert cfg["loggers"][""]["handlers"] == ["console", "error_console"]
    assert cfg["loggers"]["sqlalchemy.engine"]["level"] == "DEBUG"


def test_setup_logging_creates_log_dir(tmp_path, restore_root_logging):
    settings = DummySettings()
    settings.LOG_DIR = tmp_path / "logs"
    assert not settings.LOG_DIR.exists()

    setup_logging(settings)

    assert settings.LOG_DIR.exists()
    root = logging.getLogger()
    assert root.handlers
    assert any(isinstance(f, OperationIdFilter) for f in root.filters)
