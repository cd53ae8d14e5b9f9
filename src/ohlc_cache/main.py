"""Main module for the OHLC cache service."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from ohlc_cache.container import Container, init_container
from ohlc_cache.db import init_db
from ohlc_cache.routers import series_router, symbols_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Create tables at startup; close the quote provider on shutdown."""
    container: Container = fastapi_app.state.container
    init_db(container.engine())
    settings = container.settings()
    logger.info(
        "Serving bars from %s (provider=%s, exchange_tz=%s)",
        settings.database_url,
        settings.provider_name,
        settings.exchange_tz,
    )

    yield

    provider = container.quote_provider()
    try:
        await provider.close()
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Error closing provider %s: %s", type(provider).__name__, exc)


def create_app(container: Container | None = None) -> FastAPI:
    """Build the FastAPI app around a container (tests pass one with overrides)."""
    fastapi_app = FastAPI(
        title="OHLC Cache",
        description="Incremental daily/weekly/monthly OHLC bar cache",
        version="0.1.0",
        lifespan=lifespan,
    )
    fastapi_app.state.container = container or init_container()
    fastapi_app.include_router(series_router)
    fastapi_app.include_router(symbols_router)

    @fastapi_app.get("/")
    def health():
        """Return health check status."""
        return {"status": "ok"}

    return fastapi_app


app = create_app()


def run():
    """Run the server (uvicorn). Use for `ohlc-cache`."""
    settings = app.state.container.settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("ohlc_cache.main:app", host=settings.host, port=settings.port)
