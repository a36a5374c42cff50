"""JSON API endpoints serving cached or freshly built QI price history."""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from qi_history.ranges import get_range_config, normalize_range

log = structlog.get_logger(__name__)

router = APIRouter()

CACHE_CONTROL = "s-maxage=300, stale-while-revalidate=600"


def _respond(status_code: int, payload: dict) -> JSONResponse:
    return JSONResponse(
        content=payload,
        status_code=status_code,
        headers={"Cache-Control": CACHE_CONTROL},
    )


@router.get("/health")
async def health() -> JSONResponse:
    """Liveness probe."""
    return JSONResponse(content={"status": "ok"})


@router.get("/qi-history")
async def get_qi_history(
    request: Request,
    range_param: str | None = Query(default=None, alias="range"),
) -> JSONResponse:
    """Price history for a range, from cache while fresh, else rebuilt from RPC.

    Unknown or missing ranges fall back to 24h. When a rebuild yields
    nothing or fails, stale cached rows are served if any exist.
    """
    range_token = normalize_range(range_param)
    config = get_range_config(range_token, request.app.state.range_configs)
    store = request.app.state.store
    pipeline = request.app.state.pipeline

    cached = await store.get_history(range_token)
    now_ms = int(time.time() * 1000)
    if cached and now_ms - cached[-1]["timestamp_ms"] < config.freshness_ms:
        return _respond(200, {"data": cached, "source": "cache"})

    try:
        history = await pipeline.fetch_price_history(range_token)
    except Exception:
        log.exception("history_refresh_failed", range=range_token)
        if cached:
            return _respond(200, {"data": cached, "source": "cache", "stale": True})
        return _respond(
            502, {"error": "RPC request failed and no cached data is available."}
        )

    if history:
        rows = await store.upsert_history(range_token, history)
        log.info("history_refreshed", range=range_token, points=len(rows))
        return _respond(200, {"data": rows, "source": "rpc"})

    if cached:
        log.warning("history_served_stale", range=range_token, points=len(cached))
        return _respond(200, {"data": cached, "source": "cache", "stale": True})

    return _respond(503, {"error": "Unable to retrieve QI price history."})
