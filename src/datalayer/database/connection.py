"""
Connection management for the remote store.

A `ConnectionManager` owns exactly one handle (an SQLAlchemy `AsyncEngine`) and
tracks whether the store is reachable through it:

    manager = await ConnectionManager.connect(settings.connection_config())
    manager.status            # ConnectionState.CONNECTED / DISCONNECTED
    engine = manager.get_handle()

State machine
-------------
    DISCONNECTED --(initialize)--> CONNECTING --(probe ok)--> CONNECTED
                                   CONNECTING --(probe fails)--> DISCONNECTED
    CONNECTED / DISCONNECTED --(reset)--> CONNECTING

A direct call to test_connectivity() re-evaluates the state, so it may also move
CONNECTED <-> DISCONNECTED.

Probing
-------
A probe is a count-only query against the first collection of
`probe_collections` that exists. "Relation does not exist" (SQLSTATE 42P01)
moves on to the next candidate; if none exist the store still answered, so it
is reachable. Any other failure means DISCONNECTED.

Reconnection uses a fixed delay between attempts, independent of the
exponential RetryPolicy used by repositories.
"""

import asyncio
import base64
import binascii
import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from ..exceptions.base import ConfigurationError
from .query import Query
from .store import UNDEFINED_TABLE, SqlAlchemyStore

logger = logging.getLogger(__name__)

DEFAULT_PROBE_COLLECTIONS = ("health_check", "users", "categories")


class ConnectionState(str, Enum):
    CONNECTED = "CONNECTED"
    CONNECTING = "CONNECTING"
    DISCONNECTED = "DISCONNECTED"


class ConnectionConfig(BaseModel):
    """
    Immutable connection settings.

    Either `existing_handle` (an already-built AsyncEngine the caller owns) or
    both `endpoint` and `credential` must be provided.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    endpoint: str = ""
    credential: str = Field(default="", repr=False)
    existing_handle: Any = Field(default=None, repr=False)
    auto_refresh: bool = True
    persist_session: bool = False
    db_schema: str = "public"
    headers: dict[str, str] | None = None
    probe_collections: tuple[str, ...] = DEFAULT_PROBE_COLLECTIONS
    connect_timeout_seconds: float = Field(default=10.0, gt=0)


class ConnectionStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ConnectionState
    last_checked_at: datetime | None
    response_time_ms: float | None = None
    endpoint: str
    credential_class: str = "unknown"


# =================================================================================================================
# Helpers
# =================================================================================================================

def create_engine_from_config(config: ConnectionConfig) -> AsyncEngine:
    """
    Default handle factory.

    - credential becomes the URL password when the URL has a user but no password
    - auto_refresh -> pool_pre_ping
    - persist_session=False -> NullPool (no connections kept between operations)
    - headers -> asyncpg server_settings (e.g. application_name)
    """
    url = make_url(config.endpoint)
    if url.username and not url.password and config.credential:
        url = url.set(password=config.credential)

    kwargs: dict[str, Any] = {"pool_pre_ping": config.auto_refresh}
    if not config.persist_session:
        kwargs["poolclass"] = NullPool

    if url.get_backend_name() == "postgresql" and url.get_driver_name() == "asyncpg":
        connect_args: dict[str, Any] = {"timeout": config.connect_timeout_seconds}
        if config.headers:
            connect_args["server_settings"] = dict(config.headers)
        kwargs["connect_args"] = connect_args

    return create_async_engine(url, **kwargs)


def mask_endpoint(endpoint: str) -> str:
    """Render a database URL with its password hidden."""
    if not endpoint:
        return ""
    try:
        return make_url(endpoint).render_as_string(hide_password=True)
    except ArgumentError:
        return "***"


def credential_class(credential: str | None) -> str:
    """
    Best-effort role of a JWT-shaped credential: "anon", "service_role" or "unknown".
    Never raises.
    """
    if not credential:
        return "unknown"
    try:
        segment = credential.split(".")[1]
        padded = segment + "=" * (-len(segment) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded))
    except (IndexError, ValueError, binascii.Error, UnicodeDecodeError):
        return "unknown"

    role = claims.get("role") if isinstance(claims, dict) else None
    if role in ("anon", "service_role"):
        return role
    return "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =================================================================================================================
# Manager
# =================================================================================================================

class ConnectionManager:
    """
    Owns the store handle and its health state.

    Args:
        config: ConnectionConfig
        handle_factory: builds a handle from the config (default: create_engine_from_config)
        sleep: awaitable sleep taking seconds, used between reconnect attempts
        clock: zero-argument callable returning an aware datetime

    Raises:
        ConfigurationError: no existing_handle and endpoint/credential missing
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        handle_factory: Callable[[ConnectionConfig], Any] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self._handle_factory = handle_factory or create_engine_from_config
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or _utcnow
        self._probe_store = SqlAlchemyStore(self)
        self.last_checked_at: datetime | None = None

        if config.existing_handle is not None:
            # trust the caller: an adopted handle is considered live
            self._handle = config.existing_handle
            self._owns_handle = False
            self._status = ConnectionState.CONNECTED
            logger.info("connection.adopted_existing_handle")
            return

        self._ensure_buildable()
        try:
            self._handle = self._handle_factory(config)
        except ArgumentError as exc:
            raise ConfigurationError(f"Invalid data store endpoint: {exc}", fields=["endpoint"]) from exc
        self._owns_handle = True
        self._status = ConnectionState.CONNECTING
        logger.info("connection.handle_created", extra={"endpoint": mask_endpoint(config.endpoint)})

    @classmethod
    async def connect(cls, config: ConnectionConfig, **kwargs) -> "ConnectionManager":
        """Construct and run the initial connectivity probe."""
        manager = cls(config, **kwargs)
        await manager.initialize()
        return manager

    async def initialize(self) -> bool:
        """
        Run the initial probe for a freshly built handle. Adopted handles are
        already CONNECTED and are not probed.
        """
        if not self._owns_handle:
            return self._status is ConnectionState.CONNECTED
        connected = await self.test_connectivity()
        if not connected:
            logger.warning("connection.initial_probe_failed")
        return connected

    # ------------------------
    # Accessors
    # ------------------------
    def get_handle(self):
        return self._handle

    @property
    def status(self) -> ConnectionState:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionState.CONNECTED

    @property
    def endpoint(self) -> str:
        """Masked endpoint of the current handle."""
        if self.config.endpoint:
            return mask_endpoint(self.config.endpoint)
        url = getattr(self._handle, "url", None)
        if url is not None:
            return url.render_as_string(hide_password=True)
        return ""

    # ------------------------
    # Probing
    # ------------------------
    async def test_connectivity(self) -> bool:
        """
        Probe the store through the fallback chain of probe collections.

        Returns:
            True and sets CONNECTED when the store answered; False and sets
            DISCONNECTED otherwise. Never raises.
        """
        self.last_checked_at = self._clock()
        try:
            for collection in self.config.probe_collections:
                result = await self._probe_store.execute(Query.table(collection).select(head=True))
                if result.error is None:
                    logger.debug("connection.probe.succeeded", extra={"collection": collection})
                    self._status = ConnectionState.CONNECTED
                    return True
                if result.error.code != UNDEFINED_TABLE:
                    logger.error(
                        "connection.probe.failed",
                        extra={
                            "collection": collection,
                            "error_code": result.error.code,
                            "error_name": result.error.name,
                            "error_message": result.error.message,
                        },
                    )
                    self._status = ConnectionState.DISCONNECTED
                    return False
                logger.debug("connection.probe.collection_missing", extra={"collection": collection})
        except Exception:
            logger.exception("connection.probe.unexpected_error")
            self._status = ConnectionState.DISCONNECTED
            return False

        # no probe collection exists, but the store answered every query
        logger.warning("connection.probe.no_probe_collection")
        self._status = ConnectionState.CONNECTED
        return True

    async def stats(self) -> ConnectionStats:
        """Probe, time the probe and report connection statistics. Never raises."""
        started = time.perf_counter()
        await self.test_connectivity()
        elapsed_ms = (time.perf_counter() - started) * 1000

        connected = self._status is ConnectionState.CONNECTED
        return ConnectionStats(
            status=self._status,
            last_checked_at=self.last_checked_at,
            response_time_ms=round(elapsed_ms, 2) if connected else None,
            endpoint=self.endpoint,
            credential_class=credential_class(self.config.credential),
        )

    # ------------------------
    # Lifecycle
    # ------------------------
    def _ensure_buildable(self) -> None:
        missing = [name for name in ("endpoint", "credential") if not getattr(self.config, name)]
        if missing:
            logger.error("connection.config_incomplete", extra={"missing": missing})
            raise ConfigurationError(
                f"Data store credentials are not configured: missing {', '.join(missing)}",
                fields=missing,
            )

    def _can_rebuild(self) -> bool:
        return bool(self.config.endpoint and self.config.credential)

    async def reset(self) -> bool:
        """
        Discard the current handle, build a fresh one and re-probe.

        An adopted handle without endpoint/credential cannot be rebuilt: it is
        kept and only re-probed. Returns the probe outcome.
        """
        if self._can_rebuild():
            old_handle, owned = self._handle, self._owns_handle
            self._handle = self._handle_factory(self.config)
            self._owns_handle = True
            logger.info("connection.handle_reset")
            # checked-out connections on the old engine finish normally
            if owned and old_handle is not None:
                await old_handle.dispose()
        else:
            logger.info("connection.reset_without_rebuild")

        self._status = ConnectionState.CONNECTING
        return await self.test_connectivity()

    async def reconnect(self, max_attempts: int = 3, delay_ms: int = 1000) -> bool:
        """
        Reset and re-probe up to `max_attempts` times, sleeping `delay_ms`
        (fixed) between attempts.

        Returns:
            True as soon as a probe succeeds, False when all attempts failed.
        """
        logger.info("connection.reconnect.start", extra={"max_attempts": max_attempts, "delay_ms": delay_ms})

        for attempt in range(1, max_attempts + 1):
            logger.debug("connection.reconnect.attempt", extra={"attempt": attempt, "max_attempts": max_attempts})
            try:
                if await self.reset():
                    logger.info("connection.reconnect.succeeded", extra={"attempts": attempt})
                    return True
            except (SQLAlchemyError, OSError):
                logger.exception("connection.reconnect.attempt_error", extra={"attempt": attempt})
                self._status = ConnectionState.DISCONNECTED

            if attempt < max_attempts:
                await self._sleep(delay_ms / 1000)

        logger.error("connection.reconnect.failed", extra={"attempts": max_attempts})
        return False

    async def close(self) -> None:
        """Dispose the owned handle. Adopted handles are left to their owner."""
        if self._owns_handle and self._handle is not None:
            await self._handle.dispose()
        self._status = ConnectionState.DISCONNECTED
        logger.info("connection.closed")
