"""Request-scoped sessions, startup migrations, and schema bootstrap helpers."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from alembic.config import Config
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard import models as _models
from taskboard.core.logging import get_logger
from taskboard.db.pool import acquire_connection, normalize_database_url

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from taskboard.core.config import Settings

# Import model modules so SQLModel metadata is fully registered at startup.
_MODEL_REGISTRY = _models

BACKEND_ROOT = Path(__file__).resolve().parents[2]
logger = get_logger(__name__)


def _alembic_config(database_url: str) -> Config:
    alembic_cfg = Config(str(BACKEND_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(BACKEND_ROOT / "migrations"))
    # ConfigParser interpolation treats `%` specially.
    alembic_cfg.set_main_option(
        "sqlalchemy.url",
        normalize_database_url(database_url).replace("%", "%%"),
    )
    alembic_cfg.attributes["configure_logger"] = False
    return alembic_cfg


def run_migrations(database_url: str) -> None:
    """Apply Alembic migrations to the latest revision."""
    from alembic import command

    logger.info("Running database migrations.")
    command.upgrade(_alembic_config(database_url), "head")
    logger.info("Database migrations complete.")


async def init_db(engine: AsyncEngine, config: Settings) -> None:
    """Initialize database schema, running migrations when configured."""
    if config.db_auto_migrate:
        versions_dir = BACKEND_ROOT / "migrations" / "versions"
        if any(versions_dir.glob("*.py")):
            logger.info("Running migrations on startup")
            await asyncio.to_thread(run_migrations, config.database_url)
            return
        logger.warning("No migration revisions found; falling back to create_all")

    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session bound to one pooled connection for the whole request."""
    engine: AsyncEngine = request.app.state.db_engine
    async with (
        acquire_connection(engine) as conn,
        AsyncSession(bind=conn, expire_on_commit=False) as session,
    ):
        try:
            yield session
        finally:
            in_txn = False
            try:
                in_txn = bool(session.in_transaction())
            except SQLAlchemyError:
                logger.exception("Failed to inspect session transaction state.")
            if in_txn:
                try:
                    await session.rollback()
                except SQLAlchemyError:
                    logger.exception("Failed to rollback session after request error.")
