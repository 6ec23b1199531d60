"""Main FastAPI application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import structlog
from alembic import script
from alembic.config import Config
from alembic.runtime import migration
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy import text
from sqlalchemy.engine import Connection

from app import __version__
from app.api import set_items, sets, ztm
from app.api.error_handlers import register_error_handlers
from app.core.cache import FeedCache
from app.core.config import settings
from app.core.database import get_engine
from app.core.logging import configure_logging
from app.core.telemetry import get_tracer_provider, shutdown_tracer_provider
from app.middleware import AccessLoggingMiddleware
from app.services.ztm_service import ZtmService

# Configure logging at module level so Uvicorn startup logs go through structlog pipeline
configure_logging(log_level=settings.LOG_LEVEL)

logger = structlog.get_logger(__name__)

UPSTREAM_USER_AGENT = f"stopboard/{__version__}"


def _check_alembic_migrations(sync_conn: Connection) -> str | None:
    """
    Validate that the database is at the expected Alembic revision.

    Args:
        sync_conn: Synchronous SQLAlchemy connection

    Returns:
        Current revision ID

    Raises:
        RuntimeError: If database is not initialized or migrations are needed
    """
    context = migration.MigrationContext.configure(sync_conn)
    current_rev = context.get_current_revision()

    alembic_ini_path = Path(settings.ALEMBIC_INI_PATH)
    if not alembic_ini_path.exists():
        logger.warning("alembic_ini_not_found", path=settings.ALEMBIC_INI_PATH, action="skipping migration validation")
        return current_rev

    alembic_cfg = Config(str(alembic_ini_path))
    head_rev = script.ScriptDirectory.from_config(alembic_cfg).get_current_head()

    if current_rev is None:
        msg = "Database has not been initialized! Please run: alembic upgrade head"
        raise RuntimeError(msg)
    if current_rev != head_rev:
        msg = (
            f"Database migration required!\n"
            f"  Current revision: {current_rev}\n"
            f"  Expected revision: {head_rev}\n"
            f"Please run: alembic upgrade head"
        )
        raise RuntimeError(msg)

    return current_rev


async def _validate_database() -> None:
    """Check connectivity and migration state before serving traffic."""
    logger.info("startup_initializing", message="validating database")
    try:
        async with get_engine().begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("database_connection_successful")
            current_rev = await conn.run_sync(_check_alembic_migrations)
            logger.info("database_migration_valid", revision=current_rev)
    except RuntimeError as e:
        logger.error("migration_validation_failed", error=str(e))
        raise
    except Exception as e:
        logger.error("startup_failed", error=str(e))
        raise


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: tracing, database validation and the shared feed gateway."""
    # TracerProvider is created after fork so each worker owns its span processor
    if settings.OTEL_ENABLED and (provider := get_tracer_provider()):
        trace.set_tracer_provider(provider)
        logger.info("otel_tracer_provider_initialized")

    if settings.DEBUG:
        logger.info("debug_mode_startup", message="skipping database validation")
    else:
        await _validate_database()

    # One HTTP client and one feed cache for the whole process; deadlines are per request
    http_client = httpx.AsyncClient(
        headers={"User-Agent": UPSTREAM_USER_AGENT},
        follow_redirects=True,
        timeout=None,
    )
    app.state.ztm_service = ZtmService.from_settings(http_client, FeedCache(), settings)
    logger.info("startup_complete")

    try:
        yield
    finally:
        logger.info("shutdown_starting")
        await http_client.aclose()
        if settings.OTEL_ENABLED:
            shutdown_tracer_provider()
        await get_engine().dispose()
        logger.info("shutdown_complete")


app = FastAPI(
    title="Stopboard API",
    description="Stop sets and live ZTM Gdansk departure boards",
    version=__version__,
    lifespan=lifespan,
)

# Instrumentor wraps the ASGI app; the provider itself is installed in lifespan
if settings.OTEL_ENABLED:
    FastAPIInstrumentor().instrument_app(
        app,
        excluded_urls=",".join(settings.OTEL_EXCLUDED_URLS),
    )
    logger.info("otel_fastapi_instrumented", excluded_urls=settings.OTEL_EXCLUDED_URLS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

app.add_middleware(AccessLoggingMiddleware)

register_error_handlers(app)

app.include_router(sets.router, prefix=settings.API_V1_PREFIX)
app.include_router(set_items.router, prefix=settings.API_V1_PREFIX)
app.include_router(ztm.router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Stopboard API", "version": __version__}


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness check endpoint: the database answers a trivial query."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))
    return {"status": "ready"}
