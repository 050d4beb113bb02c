"""FastAPI web application for the live debate control plane."""

import asyncio
import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import AppConfig, get_default_config
from debate_engine.database import DebateStore, get_database_path
from models.rate_limiter import RateLimiter
from web.broadcaster import ConnectionBroadcaster
from web.debate_manager import DebateManager
from web.endpoints.debates import router as debates_router, ws_router as debates_ws_router
from web.endpoints.system import router as system_router

logger: logging.Logger = logging.getLogger(__name__)


def get_allowed_origins() -> list[str] | None:
    """Get CORS origins from environment or use development defaults."""
    env_origins: str | None = os.environ.get("ALLOWED_ORIGINS")
    if env_origins:
        origins = [origin.strip() for origin in env_origins.split(",")]
        return origins
    return None


def create_app(
    config: AppConfig | None = None, debate_manager: DebateManager | None = None
) -> FastAPI:
    """Build the application; state is created when the lifespan starts."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application lifespan - startup and shutdown."""
        manager = debate_manager
        if manager is None:
            app_config = config or get_default_config()
            rate_limiter = RateLimiter(app_config.rate_limits)
            store = DebateStore(get_database_path(app_config.system.database_path))
            manager = DebateManager(app_config, store, ConnectionBroadcaster(), rate_limiter)

        app.state.debate_manager = manager
        app.state.rate_limiter = manager.rate_limiter

        logger.info("Starting rate limiter cleanup loop...")
        cleanup_task = asyncio.create_task(manager.rate_limiter.run_cleanup_loop())

        yield

        await manager.shutdown()
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        logger.info("Rate limiter cleanup loop stopped")

    app = FastAPI(
        title="Live Debate Control Plane",
        description="Orchestrates live AI debates with pause, step and interjection controls",
        version="1.0.0",
        lifespan=lifespan,
    )

    allowed_origins = get_allowed_origins()
    if allowed_origins:
        logger.info(f"Setting CORS allowed origins: {allowed_origins}")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        logger.info("No ALLOWED_ORIGINS set, using development CORS settings")
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(system_router, prefix="/v1")
    app.include_router(debates_router, prefix="/v1")
    app.include_router(debates_ws_router, prefix="/v1")
    return app


app: FastAPI = create_app()
