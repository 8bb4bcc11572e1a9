"""Bounded connection pool construction, liveness rules, and checkout helpers.

The pool is a plain SQLAlchemy ``AsyncAdaptedQueuePool`` configured as:

- ``pool_size=max_size`` with no overflow, so at most ``max_size`` connections
  exist at once;
- ``pool_timeout`` bounding how long a caller waits for a free connection;
- ``pool_recycle`` forcing a reconnect once a connection reaches its max
  lifetime, whatever its activity;
- ``pool_pre_ping`` validating each connection at checkout and transparently
  replacing dead ones.

SQLAlchemy has no idle timeout of its own, so one is enforced with pool
events: check-in stamps the connection, and a checkout that finds it idle for
longer than the limit raises ``DisconnectionError``, which makes the pool
discard that connection and try another.
"""

from __future__ import annotations

import time
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, DisconnectionError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from taskboard.core.logging import get_logger
from taskboard.db.errors import ConnectionUnavailableError, PoolExhaustedError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.engine import Engine
    from sqlalchemy.ext.asyncio import AsyncConnection
    from sqlalchemy.pool import ConnectionPoolEntry

    from taskboard.core.config import Settings

logger = get_logger(__name__)

_LAST_CHECKIN_KEY = "taskboard_last_checkin"


@dataclass(frozen=True)
class PoolSettings:
    """Connection pool limits."""

    max_size: int = 5
    min_idle: int = 1
    timeout_seconds: float = 60.0
    idle_timeout_seconds: float = 300.0
    max_lifetime_seconds: int = 1800

    @classmethod
    def from_settings(cls, config: Settings) -> PoolSettings:
        return cls(
            max_size=config.db_pool_max_size,
            min_idle=config.db_pool_min_idle,
            timeout_seconds=config.db_pool_timeout_seconds,
            idle_timeout_seconds=config.db_pool_idle_timeout_seconds,
            max_lifetime_seconds=config.db_pool_max_lifetime_seconds,
        )


def _now() -> float:
    return time.monotonic()


def normalize_database_url(database_url: str) -> str:
    """Route bare `postgresql://` URLs through the psycopg async driver."""
    if "://" not in database_url:
        return database_url
    scheme, rest = database_url.split("://", 1)
    if scheme == "postgresql":
        return f"postgresql+psycopg://{rest}"
    return database_url


def _install_idle_timeout(sync_engine: Engine, idle_timeout_seconds: float) -> None:
    @event.listens_for(sync_engine, "checkin")
    def _stamp_checkin(dbapi_connection: Any, record: ConnectionPoolEntry) -> None:
        del dbapi_connection
        record.info[_LAST_CHECKIN_KEY] = _now()

    @event.listens_for(sync_engine, "checkout")
    def _reject_idle(
        dbapi_connection: Any,
        record: ConnectionPoolEntry,
        proxy: Any,
    ) -> None:
        del dbapi_connection, proxy
        last_checkin = record.info.get(_LAST_CHECKIN_KEY)
        if last_checkin is None:
            return
        idle_for = _now() - last_checkin
        if idle_for > idle_timeout_seconds:
            logger.debug("db.pool.idle_evicted idle_seconds=%.1f", idle_for)
            raise DisconnectionError(
                f"connection idle for {idle_for:.1f}s exceeds {idle_timeout_seconds}s",
            )


def build_engine(database_url: str, pool: PoolSettings | None = None) -> AsyncEngine:
    """Create the shared async engine and its bounded connection pool."""
    pool = pool or PoolSettings()
    engine = create_async_engine(
        normalize_database_url(database_url),
        pool_size=pool.max_size,
        max_overflow=0,
        pool_timeout=pool.timeout_seconds,
        pool_recycle=pool.max_lifetime_seconds,
        pool_pre_ping=True,
    )
    _install_idle_timeout(engine.sync_engine, pool.idle_timeout_seconds)
    logger.info(
        "db.pool.configured max_size=%s min_idle=%s timeout_s=%s idle_timeout_s=%s "
        "max_lifetime_s=%s",
        pool.max_size,
        pool.min_idle,
        pool.timeout_seconds,
        pool.idle_timeout_seconds,
        pool.max_lifetime_seconds,
    )
    return engine


@asynccontextmanager
async def acquire_connection(engine: AsyncEngine) -> AsyncIterator[AsyncConnection]:
    """Check a connection out of the pool for the duration of the block."""
    try:
        conn = await engine.connect()
    except PoolTimeoutError as exc:
        logger.warning("db.pool.exhausted error=%s", exc)
        raise PoolExhaustedError(f"Failed to get DB connection: {exc}") from exc
    except (DBAPIError, OSError) as exc:
        logger.warning("db.pool.unavailable error=%s", exc)
        raise ConnectionUnavailableError(f"Failed to get DB connection: {exc}") from exc
    try:
        yield conn
    finally:
        await conn.close()


async def warm_pool(engine: AsyncEngine, min_idle: int) -> None:
    """Open `min_idle` connections and return them to the pool as idle."""
    if min_idle <= 0:
        return
    async with AsyncExitStack() as stack:
        for _ in range(min_idle):
            conn = await stack.enter_async_context(acquire_connection(engine))
            await conn.execute(text("SELECT 1"))
    logger.info("db.pool.warmed min_idle=%s", min_idle)
