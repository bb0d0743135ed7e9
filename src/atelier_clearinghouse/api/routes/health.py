"""Liveness and dependency status.

Redis only backs scheduler leases, so losing it marks the service
``degraded`` rather than down.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atelier_clearinghouse import __version__
from atelier_clearinghouse.api.deps import get_session_factory
from atelier_clearinghouse.infrastructure.redis_client import current_redis, redis_status
from atelier_clearinghouse.logging_config import get_logger
from atelier_clearinghouse.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


async def _database_status(session_factory: async_sessionmaker[AsyncSession]) -> str:
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("health.db_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return "healthy"


@router.get("/health", response_model=HealthResponse, summary="Dependency health")
async def health_check(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> HealthResponse:
    database = await _database_status(session_factory)
    redis = await redis_status(current_redis())
    scheduler = getattr(request.app.state, "scheduler", None)

    return HealthResponse(
        status="ok" if database == redis == "healthy" else "degraded",
        version=__version__,
        database=database,
        redis=redis,
        scheduler="running" if scheduler is not None and scheduler.running else "stopped",
    )
