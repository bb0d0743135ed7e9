"""Redis connection and scheduler leases.

Redis holds no business state here. It only arbitrates which replica runs a
scheduler job: a lease is a non-blocking lock with a TTL, taken at the start
of a run and released at the end. The TTL bounds how long a crashed holder
keeps the other replicas out.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import redis.asyncio as aioredis
from redis.exceptions import LockError, RedisError

from atelier_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

LEASE_PREFIX = "atelier:lease:"

_client: aioredis.Redis | None = None


async def connect_redis(url: str) -> aioredis.Redis | None:
    """Open the process-wide client. Returns None if Redis is unreachable.

    Callers treat None as "run without leases".
    """
    global _client
    client = aioredis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.warning("redis.unreachable", error=str(exc))
        await client.aclose()
        return None
    _client = client
    logger.info("redis.connected")
    return _client


def current_redis() -> aioredis.Redis | None:
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        logger.info("redis.disconnected")
    _client = None


async def redis_status(client: aioredis.Redis | None) -> str:
    """Health string for ``/health``: healthy, not configured, or the error."""
    if client is None:
        return "not configured"
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.error("health.redis_check_failed", error=str(exc))
        return f"unhealthy: {exc}"
    return "healthy"


@asynccontextmanager
async def lease(client: aioredis.Redis, name: str, ttl_seconds: int) -> AsyncIterator[bool]:
    """Try to take the named lease without waiting.

    Yields True if this caller holds it, False if another replica does. A
    held lease is released on exit, even when the body raises.
    """
    lock = client.lock(f"{LEASE_PREFIX}{name}", timeout=ttl_seconds, blocking=False)
    acquired = bool(await lock.acquire())
    try:
        yield acquired
    finally:
        if acquired:
            try:
                await lock.release()
            except LockError:
                # TTL ran out mid-run; another replica may already hold it.
                logger.warning("redis.lease_lost", lease=name, ttl_seconds=ttl_seconds)
