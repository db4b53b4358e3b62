"""
Core pytest configuration for the entire test suite.

Domain-specific fixtures live in:
- tests/test_fixtures/store_fixtures.py       (SQLite engines, fake store, recording sleep, clock)
- tests/test_fixtures/repository_fixtures.py  (repositories and sample payloads)

They are imported at the bottom of this module so every test can use them
without importing them itself.
"""

from __future__ import annotations

import logging

# -------------------------------
# Early logging tuning (IMPORTANT)
# -------------------------------
# Silence noisy third-party loggers before importing modules that may initialize them.
NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "aiosqlite",
    "asyncio",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

import pytest
from pytest import FixtureRequest

from datalayer.config import get_settings
from datalayer.core.logging.builder import setup_logging

logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def configure_logging(request: FixtureRequest):
    """
    Install the data-layer logging configuration for the whole test session.

    dictConfig replaces root handlers, so pytest's capture handler is re-attached
    afterwards to keep caplog.records populated.
    """
    setup_logging(get_settings())

    caplog_plugin = request.config.pluginmanager.getplugin("logging-plugin")
    handler = getattr(caplog_plugin, "caplog_handler", None)
    if handler is not None:
        logging.getLogger().addHandler(handler)

    yield


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that patch env need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# Store / connection fixtures
from .test_fixtures.store_fixtures import (  # noqa: E402
    sqlite_engine,
    connection_manager,
    recording_sleep,
    fixed_clock,
)

# Repository fixtures
from .test_fixtures.repository_fixtures import (  # noqa: E402
    posts_config,
    posts_repo,
    sample_post_data,
    create_post,
    created_post,
    fake_repo_factory,
)
