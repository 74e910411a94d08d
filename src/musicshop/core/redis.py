"""Shared Redis client; used by the rate limiter only."""

from typing import Optional

import redis.asyncio as redis

from musicshop.core.config import settings

redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get the process-wide client, creating its pool on first use.

    Timeouts are short: callers fail open, so a slow Redis must not hold a
    request for long.
    """
    global redis_client
    if redis_client is None:
        redis_client = redis.Redis.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True,
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
        )
    return redis_client


async def close_redis() -> None:
    """Close the client and its connection pool."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
