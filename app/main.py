"""
FastAPI application entrypoint for the Instagram feed service.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.dependencies import get_cache_client


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Own the cache connection for the life of the process."""
    cache = get_cache_client()
    await cache.connect()
    try:
        yield
    finally:
        await cache.disconnect()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Instagram Feed Sync",
        version="0.1.0",
        description="Instagram connection management and cached media sync.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
