"""FastAPI application exposing the executor's operations surface."""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request

from governor import __version__
from governor.api.routes import router as api_router
from governor.config import Settings, get_settings
from governor.executor import RateLimitedExecutor

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    executor: RateLimitedExecutor | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings used to build the executor
        executor: Pre-built executor (its lifecycle is still managed here)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting outbound governor API...")
        app.state.executor = executor or RateLimitedExecutor.from_settings(
            settings or get_settings()
        )
        await app.state.executor.start()
        yield
        logger.info("Shutting down outbound governor API...")
        await app.state.executor.close()
        app.state.executor = None

    app = FastAPI(
        title="Outbound Governor",
        description="Quota, throttling and retry governance for outbound provider calls",
        version=__version__,
        lifespan=lifespan,
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
        return response

    app.include_router(api_router, prefix="/v1")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    return app


# Create app instance
app = create_app()
