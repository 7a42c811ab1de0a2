"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from shared.database import DatabaseManager
from shared.migrations.runner import MigrationRunner

from core.config import Settings, get_settings
from core.database import get_database_manager, init_database_manager
from core.dependencies import close_oauth_service
from core.errors import register_error_handlers
from core.logging import setup_logging
from routers import access_tokens_router, auth_router

logger = logging.getLogger(__name__)

SERVICE_NAME = "paste-auth-api"
VERSION = "3.0.0"

# Track server start time
_start_time: float = 0.0
_db_retry_task: asyncio.Task | None = None


async def _prepare_database(db_manager: DatabaseManager, settings: Settings) -> None:
    await db_manager.connect()
    if settings.run_migrations:
        await MigrationRunner(db_manager.pool).run_pending()


async def _db_retry_loop(db_manager: DatabaseManager, settings: Settings) -> None:
    """Background loop to retry DB connection after startup failure."""
    delay = 5
    max_delay = 60
    while True:
        await asyncio.sleep(delay)
        try:
            if not db_manager.is_connected:
                await db_manager.connect()
            if settings.run_migrations:
                await MigrationRunner(db_manager.pool).run_pending()
            logger.info("Database ready (background retry)")
            return
        except asyncio.CancelledError:
            return
        except Exception as e:
            delay = min(delay * 2, max_delay)
            logger.warning(
                f"DB background retry failed: {type(e).__name__}: {e}, next retry in {delay}s"
            )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    global _start_time, _db_retry_task
    _start_time = time.time()

    settings: Settings = app.state.settings

    # Startup
    logger.info("Starting paste auth API server")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Client URL: {settings.client_url}")

    # Wait up to 30s for the database before accepting requests; after that,
    # keep retrying in the background while requests get 503.
    db_manager = init_database_manager(settings.database_url, ssl=settings.database_ssl)
    try:
        await asyncio.wait_for(_prepare_database(db_manager, settings), timeout=30)
        logger.info("Database connected")
    except TimeoutError:
        logger.warning("DB connection timed out during startup, retrying in background")
        _db_retry_task = asyncio.create_task(_db_retry_loop(db_manager, settings))
    except Exception as e:
        logger.error(
            f"DB startup failed: {type(e).__name__}: {e}, retrying in background"
        )
        _db_retry_task = asyncio.create_task(_db_retry_loop(db_manager, settings))

    yield

    # Shutdown
    logger.info("Shutting down paste auth API server")
    if _db_retry_task:
        _db_retry_task.cancel()
    try:
        await close_oauth_service()
        await db_manager.disconnect()
        logger.info("Database disconnected")
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or get_settings()

    # Setup logging first
    setup_logging(settings)

    app = FastAPI(
        title="Paste Auth API",
        description="OAuth login, registration and access tokens",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.settings = settings
    app.dependency_overrides[get_settings] = lambda: settings

    # Credentialed CORS for the client app only
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(auth_router.router)
    app.include_router(access_tokens_router.router)

    # Liveness probe, no external dependency
    @app.get("/health")
    async def health():
        """Liveness check (no DB dependency)"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - _start_time),
        }

    @app.get("/status")
    async def status():
        """Readiness / status endpoint, includes an actual DB health check"""
        db_ok = False
        try:
            db_ok = await get_database_manager().check_health()
        except RuntimeError:
            db_ok = False
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "uptime_seconds": int(time.time() - _start_time),
            "db_connected": db_ok,
            "environment": settings.environment,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        """Ping endpoint"""
        return "pong"

    logger.info("FastAPI application configured")

    return app
