"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that loads the funnels and builds the gateway and
    service once
  - CORS middleware
  - Global exception handlers (see ``lead_funnel_server.errors``)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness checks

The ``cli()`` function is the ``lead-funnel-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from lead_funnel.errors import FunnelConfigError, IncompleteSessionError, InvalidTransition
from lead_funnel.funnel import FunnelStore
from lead_funnel.gateway import SubmissionGateway
from lead_funnel.service import FunnelService
from lead_funnel_db.engine import dispose_engine, get_engine

from lead_funnel_server.config import ServerSettings, load_settings
from lead_funnel_server.errors import (
    funnel_config_error_handler,
    generic_error_handler,
    incomplete_session_handler,
    invalid_transition_handler,
    key_error_handler,
    value_error_handler,
)
from lead_funnel_server.routes import register_routes

logger = logging.getLogger(__name__)


def build_gateway(settings: ServerSettings) -> SubmissionGateway | None:
    """Gateway for the configured ingestion endpoint, or None if unset."""
    if not settings.ingestion_url:
        logger.warning("INGESTION_URL not set; finished leads will only be logged")
        return None
    return SubmissionGateway(
        settings.ingestion_url,
        api_key=settings.ingestion_api_key,
        timeout=settings.ingestion_timeout,
        token_wait=settings.certification_token_wait,
        partial_endpoint=settings.ingestion_partial_url,
    )


# Starlette picks the handler for the most specific class in the MRO, so
# FunnelConfigError (a ValueError) still gets its own 500.
_EXCEPTION_HANDLERS = (
    (InvalidTransition, invalid_transition_handler),
    (IncompleteSessionError, incomplete_session_handler),
    (FunnelConfigError, funnel_config_error_handler),
    (ValueError, value_error_handler),
    (KeyError, key_error_handler),
    (Exception, generic_error_handler),
)


async def health() -> dict:
    """Readiness check: the database answers a trivial query."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Health check failed: %s", exc)
        return {"status": "error", "detail": "database unavailable"}
    return {"status": "ok"}


# ------------------------------------------------------------------
# Lifespan — runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load funnels and build shared services; drain deliveries on shutdown."""
    settings: ServerSettings = app.state.settings

    store = FunnelStore(funnel_dir=settings.funnel_dir)
    store.load()
    gateway = build_gateway(settings)

    app.state.store = store
    app.state.gateway = gateway
    app.state.service = FunnelService(store, gateway)

    yield

    if gateway is not None:
        await gateway.aclose()
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
        title="Lead Funnel API Server",
        description="REST API for lead-qualification form sessions",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_class, handler in _EXCEPTION_HANDLERS:
        app.add_exception_handler(exc_class, handler)

    app.add_api_route("/health", health, methods=["GET"], tags=["health"])
    register_routes(app)
    return app


# Module-level ASGI export (uvicorn lead_funnel_server.app:app)
app = create_app()


def cli() -> None:
    """Console-script entry point: ``lead-funnel-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "lead_funnel_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
