from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from dams.core.config import settings

logger = logging.getLogger(__name__)

_EXEMPT_PREFIXES = ("/health", "/metrics")


class RedisRateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, redis=None, limit_per_minute: int | None = None):
        super().__init__(app)
        if redis is None:
            from dams.db.redis import redis_client as redis
        self.redis = redis
        self.limit_per_minute = limit_per_minute or settings.rate_limit_per_minute

    @staticmethod
    def _resolve_subject(request: Request) -> str:
        auth = (request.headers.get("authorization") or "").strip()
        if auth.lower().startswith("bearer "):
            token = auth[7:].strip()
            if token:
                # Claims are not trusted here; the raw token just isolates the caller.
                return f"jwt:{token}"

        forwarded = (request.headers.get("x-forwarded-for") or "").strip()
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"

        real_ip = (request.headers.get("x-real-ip") or "").strip()
        if real_ip:
            return f"ip:{real_ip}"

        ip = request.client.host if request.client else "unknown"
        return f"ip:{ip}"

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable]):
        if request.url.path.startswith(_EXEMPT_PREFIXES):
            return await call_next(request)

        subject = self._resolve_subject(request)
        minute_bucket = int(time.time() // 60)
        key = f"rl:{subject}:{minute_bucket}"

        try:
            count = await self.redis.incr(key)
            if count == 1:
                await self.redis.expire(key, 65)
            if count > self.limit_per_minute:
                return JSONResponse(
                    status_code=429,
                    content={"message": "Rate limit exceeded", "success": False, "status_code": 429},
                    headers={"Retry-After": "60"},
                )
        except (RedisError, OSError) as exc:
            # Fail-open when Redis is unavailable.
            logger.warning("Rate limiter unavailable, letting request through: %s", exc)

        return await call_next(request)
