# ruff: noqa: INP001
"""Connection pool limits, liveness rules, and checkout failure modes."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from sqlalchemy import event, text

from taskboard.core.config import Settings
from taskboard.db import pool as pool_module
from taskboard.db.errors import ConnectionUnavailableError, PoolExhaustedError, StoreError
from taskboard.db.pool import (
    PoolSettings,
    acquire_connection,
    build_engine,
    normalize_database_url,
    warm_pool,
)


def _sqlite_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'pool.db'}"


def test_pool_settings_defaults() -> None:
    pool = PoolSettings()
    assert pool.max_size == 5
    assert pool.min_idle == 1
    assert pool.timeout_seconds == 60.0
    assert pool.idle_timeout_seconds == 300.0
    assert pool.max_lifetime_seconds == 1800


def test_pool_settings_from_settings() -> None:
    config = Settings(
        _env_file=None,
        db_pool_max_size=8,
        db_pool_min_idle=2,
        db_pool_timeout_seconds=5,
        db_pool_idle_timeout_seconds=30,
        db_pool_max_lifetime_seconds=600,
    )
    assert PoolSettings.from_settings(config) == PoolSettings(
        max_size=8,
        min_idle=2,
        timeout_seconds=5,
        idle_timeout_seconds=30,
        max_lifetime_seconds=600,
    )


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("postgresql://u:p@db:5432/tasks", "postgresql+psycopg://u:p@db:5432/tasks"),
        ("postgresql+psycopg://u:p@db/tasks", "postgresql+psycopg://u:p@db/tasks"),
        ("sqlite+aiosqlite:///tasks.db", "sqlite+aiosqlite:///tasks.db"),
        ("not-a-url", "not-a-url"),
    ],
)
def test_normalize_database_url(url: str, expected: str) -> None:
    assert normalize_database_url(url) == expected


@pytest.mark.asyncio
async def test_build_engine_applies_limits(tmp_path: Path) -> None:
    engine = build_engine(_sqlite_url(tmp_path))
    try:
        pool = engine.pool
        assert pool.size() == 5
        assert pool.timeout() == 60.0
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_checkout_times_out_with_pool_exhausted(tmp_path: Path) -> None:
    engine = build_engine(_sqlite_url(tmp_path), PoolSettings(max_size=1, timeout_seconds=0.05))
    try:
        async with acquire_connection(engine):
            with pytest.raises(PoolExhaustedError, match="Failed to get DB connection"):
                async with acquire_connection(engine):
                    pass
        # The held connection went back to the pool and is usable again.
        async with acquire_connection(engine) as conn:
            assert (await conn.execute(text("SELECT 1"))).scalar_one() == 1
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_unreachable_backend_raises_connection_unavailable(tmp_path: Path) -> None:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'nope' / 'pool.db'}")
    try:
        with pytest.raises(ConnectionUnavailableError) as exc:
            async with acquire_connection(engine):
                pass
        assert not isinstance(exc.value, PoolExhaustedError)
        assert isinstance(exc.value, StoreError)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_idle_connection_is_replaced_after_idle_timeout(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    clock = {"now": 1000.0}
    monkeypatch.setattr(pool_module, "_now", lambda: clock["now"])
    engine = build_engine(_sqlite_url(tmp_path), PoolSettings(idle_timeout_seconds=300))
    connects: list[object] = []

    @event.listens_for(engine.sync_engine, "connect")
    def _count_connect(dbapi_connection: object, record: object) -> None:
        del record
        connects.append(dbapi_connection)

    try:
        async with acquire_connection(engine):
            pass
        assert len(connects) == 1

        clock["now"] += 299
        async with acquire_connection(engine):
            pass
        assert len(connects) == 1

        clock["now"] += 301
        async with acquire_connection(engine) as conn:
            assert (await conn.execute(text("SELECT 1"))).scalar_one() == 1
        assert len(connects) == 2
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_warm_pool_leaves_min_idle_connections_checked_in(tmp_path: Path) -> None:
    engine = build_engine(_sqlite_url(tmp_path), PoolSettings(max_size=5, min_idle=2))
    try:
        await warm_pool(engine, 2)
        assert engine.pool.checkedin() == 2
        assert engine.pool.checkedout() == 0
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_warm_pool_with_zero_min_idle_opens_nothing(tmp_path: Path) -> None:
    engine = build_engine(_sqlite_url(tmp_path))
    try:
        await warm_pool(engine, 0)
        assert engine.pool.checkedin() == 0
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_callers_never_exceed_max_size(tmp_path: Path) -> None:
    engine = build_engine(_sqlite_url(tmp_path), PoolSettings(max_size=5))
    in_use = 0
    peak = 0

    async def _borrow() -> int:
        nonlocal in_use, peak
        async with acquire_connection(engine) as conn:
            in_use += 1
            peak = max(peak, in_use)
            await asyncio.sleep(0.01)
            value = (await conn.execute(text("SELECT 1"))).scalar_one()
            in_use -= 1
        return value

    try:
        results = await asyncio.gather(*(_borrow() for _ in range(15)))
        assert results == [1] * 15
        assert peak <= 5
        assert engine.pool.checkedout() == 0
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_overflow_is_disabled(tmp_path: Path) -> None:
    engine = build_engine(_sqlite_url(tmp_path), PoolSettings(max_size=2, timeout_seconds=0.05))
    try:
        async with acquire_connection(engine), acquire_connection(engine):
            assert engine.pool.checkedout() == 2
            with pytest.raises(PoolExhaustedError):
                async with acquire_connection(engine):
                    pass
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_dead_connection_is_replaced_at_checkout(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    engine = build_engine(_sqlite_url(tmp_path))
    dialect = engine.sync_engine.dialect
    real_ping = dialect.do_ping
    pings: list[bool] = []
    connects: list[object] = []

    def _first_ping_fails(dbapi_connection: object) -> bool:
        alive = bool(pings) and real_ping(dbapi_connection)
        pings.append(alive)
        return alive

    monkeypatch.setattr(dialect, "do_ping", _first_ping_fails)

    @event.listens_for(engine.sync_engine, "connect")
    def _count_connect(dbapi_connection: object, record: object) -> None:
        del record
        connects.append(dbapi_connection)

    try:
        # A brand-new connection is not pinged.
        async with acquire_connection(engine):
            pass
        assert pings == []

        async with acquire_connection(engine) as conn:
            assert (await conn.execute(text("SELECT 1"))).scalar_one() == 1
        assert pings == [False]
        assert len(connects) == 2

        async with acquire_connection(engine):
            pass
        assert pings == [False, True]
        assert len(connects) == 2
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_connection_is_recycled_after_max_lifetime(tmp_path: Path) -> None:
    engine = build_engine(_sqlite_url(tmp_path), PoolSettings(max_lifetime_seconds=1))
    connects: list[object] = []

    @event.listens_for(engine.sync_engine, "connect")
    def _count_connect(dbapi_connection: object, record: object) -> None:
        del record
        connects.append(dbapi_connection)

    try:
        async with acquire_connection(engine):
            pass
        async with acquire_connection(engine):
            pass
        assert len(connects) == 1

        await asyncio.sleep(1.2)
        async with acquire_connection(engine) as conn:
            assert (await conn.execute(text("SELECT 1"))).scalar_one() == 1
        assert len(connects) == 2
    finally:
        await engine.dispose()
