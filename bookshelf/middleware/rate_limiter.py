"""
Redis-backed sliding window rate limiter (application level).

Search suggestions fire on every pause in typing and each one is a model
call, so callers are limited per user (bearer token) and per IP.

Uses Redis sorted sets for precise sliding window counting.
"""

from __future__ import annotations

import time

import redis.asyncio as redis
import structlog
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from bookshelf.auth.jwt_handler import verify_token
from bookshelf.config import get_settings

logger = structlog.get_logger()

EXEMPT_PATHS = ("/health", "/live", "/ready", "/metrics")


class RateLimiterMiddleware(BaseHTTPMiddleware):
    def __init__(self, app):
        super().__init__(app)
        settings = get_settings()
        self.enabled = settings.rate_limit_enabled
        self.redis_client: redis.Redis | None = None
        self.per_user_limit = settings.rate_limit_per_user
        self.per_ip_limit = settings.rate_limit_per_ip
        self.window_seconds = settings.rate_limit_window_seconds
        self._redis_url = settings.redis_dsn

    async def _get_redis(self) -> redis.Redis:
        if self.redis_client is None:
            self.redis_client = redis.from_url(self._redis_url, decode_responses=True)
        return self.redis_client

    async def _check_rate_limit(self, key: str, limit: int) -> tuple[bool, int]:
        """
        Sliding window rate limiter using Redis sorted sets.
        Returns (allowed: bool, remaining: int).
        """
        try:
            r = await self._get_redis()
            now = time.time()
            window_start = now - self.window_seconds
            pipe = r.pipeline()

            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {f"{now}": now})
            pipe.expire(key, self.window_seconds + 1)

            results = await pipe.execute()
            current_count = results[1]

            if current_count >= limit:
                return False, 0

            remaining = limit - current_count - 1
            return True, max(remaining, 0)

        except redis.RedisError:
            # Redis down: fail open
            logger.warning("rate_limiter_redis_error", key=key)
            return True, limit

    def _too_many(self, detail: str) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": detail, "retry_after": self.window_seconds},
            headers={"Retry-After": str(self.window_seconds)},
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.enabled or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.headers.get("X-Real-IP", request.client.host if request.client else "unknown")

        ip_allowed, ip_remaining = await self._check_rate_limit(f"ratelimit:ip:{client_ip}", self.per_ip_limit)
        if not ip_allowed:
            logger.warning("rate_limited_ip", client_ip=client_ip)
            return self._too_many("Too many requests from this IP")

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            payload = verify_token(auth_header.split(" ", 1)[1])
            if payload and payload.get("type") == "access":
                user_id = payload["sub"]
                user_allowed, _ = await self._check_rate_limit(f"ratelimit:user:{user_id}", self.per_user_limit)
                if not user_allowed:
                    logger.warning("rate_limited_user", user_id=user_id)
                    return self._too_many("Too many requests, user rate limit exceeded")

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining-IP"] = str(ip_remaining)
        return response
