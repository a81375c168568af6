"""Tests for fixed-window rate limiting."""

import asyncio

import fakeredis.aioredis
import pytest
from redis.exceptions import RedisError
from starlette.requests import Request

from ra_companion.services.rate_limit import (
    RateLimitPolicy,
    RateLimitResult,
    RateLimiter,
    get_client_ip,
)

POLICY = RateLimitPolicy(name="recovery", max_requests=3, window_seconds=60)


class BrokenRedis:
    def pipeline(self, *args, **kwargs):
        raise RedisError("connection refused")

    async def delete(self, *args, **kwargs):
        raise RedisError("connection refused")


@pytest.fixture(params=["memory", "redis"])
def limiter(request, clock):
    if request.param == "redis":
        return RateLimiter(redis=fakeredis.aioredis.FakeRedis(decode_responses=True), clock=clock)
    return RateLimiter(clock=clock)


async def test_allows_up_to_max_then_rejects(limiter):
    results = [await limiter.check("1.2.3.4", POLICY) for _ in range(4)]
    assert [r.success for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert all(r.limit == 3 for r in results)


async def test_reset_at_is_stable_within_window(limiter, clock):
    first = await limiter.check("1.2.3.4", POLICY)
    clock.advance(10_000)
    second = await limiter.check("1.2.3.4", POLICY)
    assert first.reset_at == second.reset_at == clock.now - 10_000 + 60_000


async def test_new_window_after_reset(limiter, clock):
    for _ in range(4):
        await limiter.check("1.2.3.4", POLICY)
    clock.advance(60_001)
    result = await limiter.check("1.2.3.4", POLICY)
    assert result.success
    assert result.remaining == 2


async def test_identifiers_and_policies_are_independent(limiter):
    chat = RateLimitPolicy(name="chat", max_requests=1, window_seconds=60)
    assert (await limiter.check("a", chat)).success
    assert not (await limiter.check("a", chat)).success
    assert (await limiter.check("b", chat)).success
    assert (await limiter.check("a", POLICY)).success


async def test_rejected_result_reports_positive_retry_after(limiter, clock):
    for _ in range(3):
        await limiter.check("1.2.3.4", POLICY)
    clock.advance(59_500)
    result = await limiter.check("1.2.3.4", POLICY)
    assert not result.success
    assert result.retry_after_seconds(limiter.now()) == 1


async def test_redis_errors_fail_open(clock):
    limiter = RateLimiter(redis=BrokenRedis(), clock=clock)
    result = await limiter.check("1.2.3.4", POLICY)
    assert result.success
    assert result.remaining == 2


async def test_malformed_redis_entry_starts_new_window(clock):
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await redis.hset("ratelimit:recovery:1.2.3.4", mapping={"count": 7, "resetAt": "soon"})
    limiter = RateLimiter(redis=redis, clock=clock)
    result = await limiter.check("1.2.3.4", POLICY)
    assert result.success
    assert result.remaining == 2


async def test_wrong_type_redis_entry_fails_open(clock):
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await redis.set("ratelimit:recovery:1.2.3.4", "garbage")
    limiter = RateLimiter(redis=redis, clock=clock)
    assert (await limiter.check("1.2.3.4", POLICY)).success


async def test_concurrent_redis_checks_admit_exactly_max(clock):
    limiter = RateLimiter(redis=fakeredis.aioredis.FakeRedis(decode_responses=True), clock=clock)
    results = await asyncio.gather(*[limiter.check("1.2.3.4", POLICY) for _ in range(20)])
    assert sum(r.success for r in results) == 3
    assert all(r.remaining == 0 for r in results if not r.success)


async def test_redis_window_expires_in_store(clock):
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    limiter = RateLimiter(redis=redis, clock=clock)
    await limiter.check("1.2.3.4", POLICY)
    ttl = await redis.pttl("ratelimit:recovery:1.2.3.4")
    assert 0 < ttl <= 60_000


async def test_expired_local_windows_are_purged(clock):
    limiter = RateLimiter(clock=clock)
    for i in range(500):
        await limiter.check(f"10.0.{i // 256}.{i % 256}", POLICY)
    assert len(limiter._local) == 500

    clock.advance(3_600_000)
    await limiter.check("203.0.113.9", POLICY)
    assert len(limiter._local) == 1


def test_retry_after_rounds_up_and_is_at_least_one():
    result = RateLimitResult(success=False, limit=1, remaining=0, reset_at=10_000)
    assert result.retry_after_seconds(now=8_100) == 2
    assert result.retry_after_seconds(now=10_000) == 1
    assert result.retry_after_seconds(now=20_000) == 1


def _request(headers=None, client=("10.0.0.1", 1234)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_client_ip_prefers_first_forwarded_hop():
    request = _request({"X-Forwarded-For": "203.0.113.5, 10.0.0.2", "X-Real-IP": "198.51.100.1"})
    assert get_client_ip(request) == "203.0.113.5"


def test_client_ip_falls_back_to_real_ip_then_peer():
    assert get_client_ip(_request({"X-Real-IP": "198.51.100.1"})) == "198.51.100.1"
    assert get_client_ip(_request()) == "10.0.0.1"
    assert get_client_ip(_request(client=None)) == "unknown"
