"""quicktask - personal task list with live updates."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.change_feed import change_feed
from src.core.config import settings
from src.core.db_client import close_connection, init_db
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.redis_client import redis_client
from src.interface.auth_router import router as auth_router
from src.interface.task_router import router as task_router
from src.services.task_store import store_registry


logger = logging.getLogger(__name__)


async def check_redis_connectivity() -> None:
    """Verify Redis connectivity (optional service).

    Only checks if Redis is configured. Logs warning if unavailable but doesn't fail;
    change notifications then stay in-process.
    """
    if not redis_client.is_available:
        logger.info("startup_validation", extra={"service": "redis", "status": "disabled"})
        return

    if await redis_client.ping():
        logger.info("startup_validation", extra={"service": "redis", "status": "ok"})
    else:
        logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable"})


async def validate_startup_configuration() -> None:
    """Validate required credentials and optional external services.

    Raises:
        SystemExit: If a required credential is missing
    """
    logger.info("startup_validation_begin")

    try:
        if settings.is_production:
            settings.require_credential("secret_key", "Secret key for session signing")
        elif not settings.secret_key:
            logger.warning("startup_validation", extra={"stage": "credentials", "status": "dev_secret_key"})

        logger.info("startup_validation", extra={"stage": "credentials", "status": "ok"})

        await check_redis_connectivity()

        logger.info("startup_validation_complete", extra={"status": "ok"})

    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()
    await validate_startup_configuration()

    await init_db()
    logger.info("Database initialized")

    await change_feed.start()
    yield
    # Shutdown
    store_registry.close()
    await change_feed.stop()
    await redis_client.close()
    await close_connection()


app = FastAPI(
    title="quicktask",
    description="Personal task list with live updates",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(auth_router)
app.include_router(task_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(
        content={
            "status": "healthy",
            "change_feed": {
                "transport": "redis" if change_feed.uses_redis else "in-process",
                "subscribers": change_feed.subscriber_count,
            },
            "redis": redis_client.get_health_status(),
            "active_stores": len(store_registry.active_users),
        },
        status_code=200,
    )
