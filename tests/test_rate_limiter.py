"""Tests for the sliding-window rate limiter, with Redis replaced by in-memory fakes."""

from __future__ import annotations

import pytest
import redis.asyncio as redis

from bookshelf.middleware.rate_limiter import RateLimiterMiddleware


class FakePipeline:
    def __init__(self, counts: dict[str, int], fail: bool = False) -> None:
        self._counts = counts
        self._fail = fail
        self._key = None

    def zremrangebyscore(self, key, *_):
        self._key = key

    def zcard(self, key):
        pass

    def zadd(self, key, mapping):
        pass

    def expire(self, key, seconds):
        pass

    async def execute(self):
        if self._fail:
            raise redis.ConnectionError("redis unavailable")
        current = self._counts.get(self._key, 0)
        self._counts[self._key] = current + 1
        return [0, current, 1, True]


class FakeRedis:
    def __init__(self, fail: bool = False) -> None:
        self.counts: dict[str, int] = {}
        self.fail = fail

    def pipeline(self):
        return FakePipeline(self.counts, self.fail)


async def _noop_app(scope, receive, send):
    pass


def _limiter(fake: FakeRedis) -> RateLimiterMiddleware:
    limiter = RateLimiterMiddleware(_noop_app)
    limiter.redis_client = fake
    return limiter


@pytest.mark.asyncio
async def test_allows_until_limit_then_blocks():
    limiter = _limiter(FakeRedis())

    results = [await limiter._check_rate_limit("ratelimit:user:1", 2) for _ in range(3)]

    assert results == [(True, 1), (True, 0), (False, 0)]


@pytest.mark.asyncio
async def test_fails_open_when_redis_is_down():
    limiter = _limiter(FakeRedis(fail=True))
    assert await limiter._check_rate_limit("ratelimit:ip:1.2.3.4", 5) == (True, 5)
