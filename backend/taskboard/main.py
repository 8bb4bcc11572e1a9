"""FastAPI application factory, lifespan, and router wiring for the backend."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import PurePath
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from taskboard.api.tasks import router as tasks_router
from taskboard.core.config import Settings, settings
from taskboard.core.error_handling import install_error_handling
from taskboard.core.logging import configure_logging, get_logger
from taskboard.db.errors import StoreError
from taskboard.db.pool import PoolSettings, acquire_connection, build_engine, warm_pool
from taskboard.db.session import init_db
from taskboard.schemas.health import HealthStatusResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from contextlib import AbstractAsyncContextManager

    from sqlalchemy.ext.asyncio import AsyncEngine
    from starlette.responses import Response
    from starlette.types import Scope

configure_logging()
logger = get_logger(__name__)
OPENAPI_TAGS = [
    {
        "name": "health",
        "description": (
            "Service liveness/readiness probes used by infrastructure and runtime checks."
        ),
    },
    {
        "name": "tasks",
        "description": "Task create, list, read, replace, and soft-delete operations.",
    },
]


ASSET_CACHE_CONTROL = "public, max-age=31536000"


class FrontendFiles(StaticFiles):
    """Built frontend bundle; hashed files under `assets/` are cached for a year."""

    async def get_response(self, path: str, scope: Scope) -> Response:
        response = await super().get_response(path, scope)
        if PurePath(path).parts[:1] == ("assets",) and response.status_code == status.HTTP_200_OK:
            response.headers["Cache-Control"] = ASSET_CACHE_CONTROL
        return response


def _build_lifespan(
    config: Settings,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Prepare the schema and pool before serving, release the pool on shutdown."""
        engine: AsyncEngine = app.state.db_engine
        logger.info(
            "app.lifecycle.starting environment=%s db_auto_migrate=%s",
            config.environment,
            config.db_auto_migrate,
        )
        await init_db(engine, config)
        await warm_pool(engine, config.db_pool_min_idle)
        logger.info("app.lifecycle.started")
        try:
            yield
        finally:
            await engine.dispose()
            logger.info("app.lifecycle.stopped")

    return lifespan


def _register_health_routes(app: FastAPI) -> None:
    @app.get(
        "/healthz",
        tags=["health"],
        response_model=HealthStatusResponse,
        summary="Health Check",
        description="Lightweight liveness probe endpoint.",
    )
    def healthz() -> HealthStatusResponse:
        """Lightweight liveness probe endpoint."""
        return HealthStatusResponse(ok=True)

    @app.get(
        "/readyz",
        tags=["health"],
        response_model=HealthStatusResponse,
        summary="Readiness Check",
        description="Readiness probe that checks a database connection out of the pool.",
        responses={
            status.HTTP_503_SERVICE_UNAVAILABLE: {
                "description": "No database connection could be obtained.",
                "content": {"application/json": {"example": {"ok": False}}},
            },
        },
    )
    async def readyz(request: Request) -> HealthStatusResponse | JSONResponse:
        """Readiness probe that checks a database connection out of the pool."""
        try:
            async with acquire_connection(request.app.state.db_engine) as conn:
                await conn.execute(text("SELECT 1"))
        except StoreError as exc:
            logger.warning("app.readiness.failed error=%s", exc)
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"ok": False},
            )
        return HealthStatusResponse(ok=True)


def create_app(config: Settings | None = None, *, engine: AsyncEngine | None = None) -> FastAPI:
    """Build the API application around one shared connection pool."""
    config = config or settings
    if engine is None:
        engine = build_engine(config.database_url, PoolSettings.from_settings(config))

    app = FastAPI(
        title="Taskboard API",
        version="0.1.0",
        lifespan=_build_lifespan(config),
        openapi_tags=OPENAPI_TAGS,
    )
    app.state.db_engine = engine
    app.state.settings = config

    origins = [o.strip() for o in config.cors_origins.split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        logger.info("app.cors.enabled origins_count=%s", len(origins))
    else:
        logger.info("app.cors.disabled")

    install_error_handling(app)
    _register_health_routes(app)

    api = APIRouter(prefix="/api")
    api.include_router(tasks_router)
    app.include_router(api)

    frontend_dir = config.frontend_dist_dir
    if frontend_dir is not None and frontend_dir.is_dir():
        app.mount("/", FrontendFiles(directory=frontend_dir, html=True), name="frontend")
        logger.info("app.frontend.mounted path=%s", frontend_dir)

    logger.debug("app.routes.registered count=%s", len(app.routes))
    return app


app = create_app()
