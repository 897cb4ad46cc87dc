"""FastAPI application for the Crossfire debate arena."""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crossfire import __version__
from crossfire.config.settings import AppConfig, get_default_config
from crossfire.debate_engine.session_store import SessionStore
from crossfire.models.providers.base_model_provider import BaseModelProvider
from crossfire.web.dependencies import Services, build_services
from crossfire.web.endpoints.sessions import router as sessions_router
from crossfire.web.endpoints.system import router as system_router
from crossfire.web.errors import register_exception_handlers
from crossfire.web.rate_limit import Clock

logger: logging.Logger = logging.getLogger(__name__)


async def rate_limit_sweeper(services: Services, interval: float) -> None:
    """Background task to periodically drop expired rate-limit entries."""
    while True:
        try:
            await asyncio.sleep(interval)

            cleaned_count = services.limits.cleanup_expired()
            if cleaned_count > 0:
                logger.info(f"Scheduled rate-limit cleanup: removed {cleaned_count} expired entries")
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Error in rate-limit sweeper: {e}")


def _add_cors(app: FastAPI, allowed_origins: list[str]) -> None:
    if allowed_origins:
        logger.info(f"Setting CORS allowed origins: {allowed_origins}")

        # Production: Use specific origins
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        logger.info("No allowed origins configured, using development CORS settings")

        # Development: Allow any localhost/127.0.0.1
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )


def create_app(
    config: Optional[AppConfig] = None,
    *,
    provider: Optional[BaseModelProvider] = None,
    store: Optional[SessionStore] = None,
    clock: Clock = time.time,
) -> FastAPI:
    """Build the application.

    ``provider``, ``store`` and ``clock`` replace the configured collaborators,
    which is how the tests run without network access.
    """
    config = config or get_default_config()
    services = build_services(config, provider=provider, store=store, clock=clock)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application lifespan - startup and shutdown."""
        logger.info("Starting rate-limit sweeper...")
        sweeper = asyncio.create_task(
            rate_limit_sweeper(services, config.system.rate_limit_sweep_seconds)
        )

        yield

        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        logger.info("Rate-limit sweeper stopped")

        await services.provider.aclose()

    app = FastAPI(
        title="Crossfire Debate Arena",
        description="Turn-based debates against an AI opponent",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    _add_cors(app, config.system.allowed_origins)
    register_exception_handlers(app)

    app.include_router(system_router, prefix="/v1")
    app.include_router(sessions_router, prefix="/v1")

    return app
