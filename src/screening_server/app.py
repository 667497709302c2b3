"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that loads catalogs and builds the engine once
  - CORS middleware
  - Global exception handlers (SDK ValueError → 404/409/400, SubmissionError → 502)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness probes

The ``cli()`` function is the ``screening-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from screening_db.engine import dispose_engine, get_engine
from screening_flow.catalog import CatalogStore
from screening_flow.engine import ScreeningEngine, SubmissionError
from screening_flow.outcome import RuleBasedOutcomeEvaluator

from screening_server.config import ServerSettings, load_settings
from screening_server.errors import (
    generic_error_handler,
    key_error_handler,
    submission_error_handler,
    value_error_handler,
)
from screening_server.fast_path import CallbackDataSource
from screening_server.routes import register_routes

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Lifespan: runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Load YAML catalogs into a ``CatalogStore``
      2. Build the fast-path data source (when configured) and the engine
      3. Stash them on ``app.state`` for dependency injection

    Shutdown:
      1. Cancel in-flight fast-path attempts
      2. Dispose the database engine's connection pool
    """
    settings: ServerSettings = app.state.settings

    store = CatalogStore(catalog_dir=settings.catalog_dir)
    store.load()

    data_source = None
    if settings.fast_path_connect_url:
        data_source = CallbackDataSource(
            settings.fast_path_connect_url, settings.fast_path_secret,
        )
    else:
        logger.info("Fast path disabled (SERVER_FAST_PATH_CONNECT_URL not set)")

    engine = ScreeningEngine(store, RuleBasedOutcomeEvaluator(), data_source=data_source)

    app.state.store = store
    app.state.data_source = data_source
    app.state.engine = engine

    yield

    await engine.close()
    await dispose_engine()
    logger.info("Database engine disposed")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="Screening API Server",
        description="REST API for patient-assistance program screening",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Read by the lifespan handler and dependencies
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SubmissionError, submission_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(KeyError, key_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    @app.get("/health")
    async def health() -> dict:
        """Readiness probe — verifies DB connectivity."""
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error"}

    register_routes(app)

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn screening_server.app:app)
# ------------------------------------------------------------------
app = create_app()


def cli() -> None:
    """Console-script entry point: ``screening-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "screening_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
