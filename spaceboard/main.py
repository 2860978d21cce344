"""SpaceBoard FastAPI application entry point.

Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, builds the cache context and the space service at
startup, and tears them down on shutdown.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from spaceboard.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from spaceboard.api.routes import router as api_router
from spaceboard.config.loader import load_config
from spaceboard.config.settings import Settings
from spaceboard.providers.space.launch_library_provider import LaunchLibraryProvider
from spaceboard.providers.space.open_notify_provider import OpenNotifyProvider
from spaceboard.providers.space.wheretheiss_provider import WhereTheISSProvider
from spaceboard.services.context import CacheContext, build_cache_context
from spaceboard.services.space_service import SpaceService
from spaceboard.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"


def build_space_service(context: CacheContext) -> SpaceService:
    settings = context.settings
    client = context.http_client
    return SpaceService(
        cache=context.manager,
        crew=OpenNotifyProvider(client, url=settings.open_notify_url),
        details=LaunchLibraryProvider(client, url=settings.launch_library_url),
        telemetry=WhereTheISSProvider(client, url=settings.iss_url),
        settings=settings,
    )


def create_app(
    app_settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Parameters
    ----------
    app_settings:
        Resolved settings; loaded via :func:`load_config` when omitted.
    http_client:
        Shared client for origins and asset downloads, e.g. one with an
        ``httpx.MockTransport`` in tests.
    """
    resolved = app_settings or load_config()
    configure_logging(
        log_level=resolved.log_level,
        json_output=(resolved.app_env == "production"),
    )
    logger: structlog.BoundLogger = get_logger(__name__)

    @asynccontextmanager
    async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
        context = build_cache_context(resolved, http_client=http_client)
        context.rate_limiter.start()
        application.state.cache_context = context
        application.state.space_service = build_space_service(context)
        logger.info(
            "app_startup",
            version=_VERSION,
            environment=resolved.app_env,
            cache_dir=resolved.cache_dir,
        )

        yield

        await context.aclose()
        logger.info("app_shutdown")

    application = FastAPI(
        title="SpaceBoard API",
        version=_VERSION,
        description=(
            "Astronauts currently in space, enriched with biographical data, "
            "plus live ISS telemetry, served through a rate-limited cache."
        ),
        lifespan=_lifespan,
    )

    # Last added runs first: request logging wraps error handling.
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    application.include_router(api_router)
    return application


if __name__ == "__main__":
    _settings = load_config()
    uvicorn.run(
        create_app(_settings),
        host=_settings.app_host,
        port=_settings.app_port,
    )
