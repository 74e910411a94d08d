"""Rate limiting middleware: sliding windows in Redis, one Lua call per request."""

import logging
import time
from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from musicshop.core.redis import get_redis
from musicshop.core.security import decode_access_token
from musicshop.middleware.metrics import record_rate_limited

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limits per client IP and per authenticated user.

    All buckets of a request are checked and recorded in one atomic script:
    a request rejected by any bucket is counted in none of them. When Redis
    cannot be reached the request is let through.
    """

    # KEYS: one sorted set per bucket
    # ARGV: now, window, member, then one limit per key
    # Returns {index of the rejecting key or 0, seconds to wait}
    SCRIPT = """
    local now = tonumber(ARGV[1])
    local window = tonumber(ARGV[2])
    local member = ARGV[3]

    for i, key in ipairs(KEYS) do
        redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
        if redis.call('ZCARD', key) >= tonumber(ARGV[3 + i]) then
            local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
            local wait = 1
            if #oldest == 2 then
                wait = math.max(1, math.ceil(tonumber(oldest[2]) + window - now))
            end
            return {i, wait}
        end
    end

    for _, key in ipairs(KEYS) do
        redis.call('ZADD', key, now, member)
        redis.call('EXPIRE', key, math.ceil(window) + 1)
    end
    return {0, 0}
    """

    EXEMPT_PATHS = frozenset({"/health", "/metrics"})

    MESSAGES = {
        "ip": "Too many requests from this IP",
        "user": "Too many requests for this user",
    }

    def __init__(self, app, user_limit: int = 20, ip_limit: int = 200, window_seconds: int = 1):
        super().__init__(app)
        self.user_limit = user_limit
        self.ip_limit = ip_limit
        self.window_seconds = window_seconds
        self._script = None

    @staticmethod
    def _user_id(request: Request) -> str | None:
        """User id from a valid bearer token; anything else is limited by IP only."""
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        payload = decode_access_token(token)
        if not payload or payload.get("sub") is None:
            return None
        return str(payload["sub"])

    def _buckets(self, request: Request) -> list[tuple[str, str, int]]:
        """(scope, redis key, limit) for each window the request counts against."""
        client_ip = request.client.host if request.client else "unknown"
        buckets = [("ip", f"ratelimit:ip:{client_ip}", self.ip_limit)]

        user_id = self._user_id(request)
        if user_id is not None:
            buckets.append(("user", f"ratelimit:user:{user_id}", self.user_limit))
        return buckets

    async def _hit(self, buckets: list[tuple[str, str, int]]) -> tuple[int, int]:
        """Record a request in every bucket unless one of them is full.

        Returns:
            Tuple of (1-based index of the full bucket or 0, retry after seconds)
        """
        redis = await get_redis()
        if self._script is None:
            self._script = redis.register_script(self.SCRIPT)

        now = time.time()
        result = await self._script(
            keys=[key for _, key, _ in buckets],
            args=[now, self.window_seconds, f"{now}:{uuid4().hex}", *(limit for _, _, limit in buckets)],
        )
        return int(result[0]), int(result[1])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        buckets = self._buckets(request)
        try:
            rejected, retry_after = await self._hit(buckets)
        except (RedisError, OSError) as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return await call_next(request)

        if rejected:
            scope = buckets[rejected - 1][0]
            record_rate_limited(scope)
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": self.MESSAGES[scope], "code": "RATE_LIMITED"},
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)
