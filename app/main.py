"""
FastAPI application entry point.
Challenge: Mount routes, error handlers, middleware (Prometheus), startup/shutdown of store clients.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from app.config import get_settings
from app.api.v1.router import api_router
from app.core.errors import AppError, app_error_handler
from app.core.logging import setup_logging
from app.db.session import dispose_engine
from app.search.elasticsearch_client import close_elasticsearch, ensure_items_index, get_elasticsearch

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: ensure the items index when Elasticsearch backs search. Shutdown: close clients."""
    settings = get_settings()
    if settings.search_backend == "elasticsearch":
        try:
            await ensure_items_index(await get_elasticsearch(), settings.items_index)
        except Exception as exc:
            # Search still works from the database while the index is down
            logger.warning("Could not ensure index %s at startup: %s", settings.items_index, exc)
    if not settings.geo_search_enabled:
        logger.warning("Geo search is disabled; proximity queries will fail with a configuration error")
    yield
    await close_elasticsearch()
    await dispose_engine()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title=settings.app_name,
        description="Barter item search: text, category, location and proximity filters with uniform pagination.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(AppError, app_error_handler)

    # CORS for frontend/API consumers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics at /metrics
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()
