"""FastAPI application hosting the market-feed WebSocket channels."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import FeedSettings
from .market import FeedRegistry, create_live_source, create_stream_router
from .market.interface import LiveBookSource

logger = logging.getLogger(__name__)


def create_app(
    settings: FeedSettings | None = None,
    live_source: LiveBookSource | None = None,
) -> FastAPI:
    """Build the app. The registry starts and stops with the app lifespan.

    ``live_source`` overrides the source chosen from settings (tests pass
    fakes here).
    """
    settings = settings or FeedSettings.from_env()
    source = live_source if live_source is not None else create_live_source(settings)
    registry = FeedRegistry(
        live_source=source,
        history_interval=settings.history_interval,
        book_interval=settings.book_interval,
        evict_idle=settings.evict_idle,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry.start()
        try:
            yield
        finally:
            await registry.stop()
            if source is not None:
                await source.aclose()

    app = FastAPI(title="feedhub", lifespan=lifespan)
    app.state.registry = registry
    app.state.settings = settings
    app.include_router(create_stream_router(registry))

    @app.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "tickers": registry.active_tickers}

    return app


def main() -> None:
    import uvicorn

    settings = FeedSettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
