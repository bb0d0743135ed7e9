"""FastAPI application entry point for the Atelier Clearinghouse.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, collaborators, and the
       reconciliation scheduler.
    2. Running: Serve the REST API at /api/v1/* on a single Uvicorn process;
       scheduler jobs run on the same event loop.
    3. Shutdown: Stop the scheduler, then close database and Redis connections.

Run with:
    uv run uvicorn atelier_clearinghouse.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from atelier_clearinghouse import __version__
from atelier_clearinghouse.config import get_settings
from atelier_clearinghouse.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from atelier_clearinghouse.infrastructure.database.engine import (
        close_db,
        get_session_factory,
        init_db,
    )

    await init_db()
    app.state.session_factory = get_session_factory()

    # 3. Redis (scheduler leases only); None when unreachable
    from atelier_clearinghouse.infrastructure.redis_client import close_redis, connect_redis

    redis_client = await connect_redis(settings.redis_url)

    # 4. Collaborators. Only the in-process ones ship with this service;
    # deployments attach real adapters before startup.
    if getattr(app.state, "collaborators", None) is None:
        if not settings.is_development:
            raise RuntimeError("No collaborators configured outside development mode")
        from atelier_clearinghouse.infrastructure.simulated import simulated_collaborators

        app.state.collaborators = simulated_collaborators()
        logger.info("app.simulated_collaborators")

    # 5. Reconciliation scheduler
    app.state.scheduler = None
    if settings.scheduler_enabled:
        from atelier_clearinghouse.scheduler import ReconciliationJobs, ReconciliationScheduler

        jobs = ReconciliationJobs(app.state.session_factory, app.state.collaborators, settings)
        app.state.scheduler = ReconciliationScheduler(jobs, redis_client, settings)
        app.state.scheduler.start()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    if app.state.scheduler is not None:
        app.state.scheduler.shutdown()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory - creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Atelier Clearinghouse",
        description=(
            "Negotiation, production tracking and escrow settlement for "
            "made-to-measure fashion orders."
        ),
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from atelier_clearinghouse.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from atelier_clearinghouse.api.routes.fees import router as fees_router
    from atelier_clearinghouse.api.routes.health import router as health_router
    from atelier_clearinghouse.api.routes.offers import router as offers_router
    from atelier_clearinghouse.api.routes.orders import router as orders_router
    from atelier_clearinghouse.api.routes.wallet import router as wallet_router

    app.include_router(health_router)
    app.include_router(offers_router)
    app.include_router(orders_router)
    app.include_router(wallet_router)
    app.include_router(fees_router)

    return app


# The app instance used by Uvicorn
app = create_app()
