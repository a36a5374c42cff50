"""FastAPI application factory for the price history API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from qi_history.api import routes
from qi_history.ranges import RANGE_CONFIGS


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to open the database and network clients.

    Returns:
        Configured FastAPI application. Route handlers expect ``pipeline``
        and ``store`` on ``app.state``; the lifespan (or a test) sets them.
    """
    app = FastAPI(
        title="QI Price History",
        lifespan=lifespan,
    )

    app.state.pipeline = None
    app.state.store = None
    app.state.range_configs = RANGE_CONFIGS

    app.include_router(routes.router, prefix="/api")

    return app
