"""Entry point for the QI price history service.

Wires the chain client, price feed, pipeline and history cache together.
When the API is enabled (default), serves ``/api/qi-history`` through
uvicorn's programmatic API with a FastAPI lifespan that owns the database
and network clients. When disabled, builds every range once and logs a
summary, which is handy for checking a node by hand.

Component wiring order (in _build_components):
1. QuaiRpcClient (chain JSON-RPC)
2. ReferencePriceFeed (CoinGecko or ccxt ticker)
3. BlockCache (process-scoped)
4. PriceHistoryPipeline
5. HistoryDatabase + PriceHistoryStore
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import FastAPI

from qi_history.chain.block_locator import BlockCache
from qi_history.chain.quai_client import QuaiRpcClient
from qi_history.config import AppSettings
from qi_history.data.database import HistoryDatabase
from qi_history.data.store import PriceHistoryStore
from qi_history.logging import get_logger, setup_logging
from qi_history.pipeline import PriceHistoryPipeline
from qi_history.pricing.feed import build_price_feed
from qi_history.ranges import VALID_RANGES


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Does NOT open the database; that happens in the lifespan (API mode)
    or in run() (one-shot mode).
    """
    chain_client = QuaiRpcClient(settings.rpc)
    price_feed = build_price_feed(settings.price_feed)
    block_cache = BlockCache()

    pipeline = PriceHistoryPipeline(
        chain=chain_client,
        price_feed=price_feed,
        settings=settings.history,
        block_cache=block_cache,
        rate_amount_hex=settings.rpc.rate_amount_hex,
    )

    database = HistoryDatabase(settings.cache.db_path)
    store = PriceHistoryStore(database)

    return {
        "chain_client": chain_client,
        "price_feed": price_feed,
        "block_cache": block_cache,
        "pipeline": pipeline,
        "database": database,
        "store": store,
    }


async def _close_clients(components: dict[str, Any]) -> None:
    await components["price_feed"].close()
    await components["chain_client"].close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the history database on startup; close it and the clients on shutdown."""
    logger = get_logger("qi_history.main")
    components = app.state.components

    await components["database"].connect()
    app.state.pipeline = components["pipeline"]
    app.state.store = components["store"]
    logger.info("lifespan_started")

    try:
        yield
    finally:
        await components["database"].close()
        await _close_clients(components)
        logger.info("qi_history_stopped")


async def _fetch_all_once(components: dict[str, Any]) -> None:
    """Build every range once and log first/last points."""
    logger = get_logger("qi_history.main")
    pipeline: PriceHistoryPipeline = components["pipeline"]

    for range_token in VALID_RANGES:
        points = await pipeline.fetch_price_history(range_token)
        if not points:
            logger.warning("range_empty", range=range_token)
            continue
        first, last = points[0], points[-1]
        logger.info(
            "range_summary",
            range=range_token,
            points=len(points),
            first_at=datetime.fromtimestamp(first.timestamp_ms / 1000, tz=timezone.utc).isoformat(),
            first_price=first.price_usd,
            last_at=datetime.fromtimestamp(last.timestamp_ms / 1000, tz=timezone.utc).isoformat(),
            last_price=last.price_usd,
            cached_blocks=len(components["block_cache"]),
        )


async def run() -> None:
    """Run the service.

    API_ENABLED=true (default): serve the API with uvicorn.
    API_ENABLED=false: build each range once, log a summary and exit.
    """
    settings = AppSettings()
    setup_logging(settings.log_level)
    logger = get_logger("qi_history.main")

    components = _build_components(settings)

    if settings.api.enabled:
        from qi_history.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_api",
            host=settings.api.host,
            port=settings.api.port,
            rpc_url=settings.rpc.url,
            price_source=settings.price_feed.source,
        )
        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        logger.info("running_once", rpc_url=settings.rpc.url)
        try:
            await _fetch_all_once(components)
        finally:
            await _close_clients(components)


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
