"""
Fixed-window rate limiting per client identifier.

Uses Redis when a client is supplied (shared across workers) and an
in-process dict otherwise (local development). Each named policy keeps its
own window, so chat and recovery requests are budgeted independently.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ra_companion.utils.time import now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named request budget: at most max_requests per window."""

    name: str
    max_requests: int
    window_seconds: float

    @property
    def window_ms(self) -> int:
        return int(self.window_seconds * 1000)


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_at: int  # epoch milliseconds

    def retry_after_seconds(self, now: Optional[int] = None) -> int:
        """Whole seconds until the window resets (always at least 1)."""
        current = now_ms() if now is None else now
        return max(1, math.ceil((self.reset_at - current) / 1000))


@dataclass
class _WindowEntry:
    count: int
    reset_at: int


class RateLimiter:
    """Checks and counts requests against a RateLimitPolicy."""

    def __init__(
        self,
        redis: Optional[aioredis.Redis] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._redis = redis
        self._clock = clock
        self._local: Dict[Tuple[str, str], _WindowEntry] = {}

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    def now(self) -> int:
        """The limiter's clock, in epoch milliseconds."""
        return self._clock()

    async def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        """
        Count one request for identifier under policy.

        Returns success=False once the window's budget is spent. reset_at
        stays fixed for the whole window. The Redis count is updated in one
        MULTI/EXEC so concurrent workers cannot both take the last slot.
        """
        if self._redis is not None:
            return await self._check_redis(identifier, policy)
        return self._check_local(identifier, policy)

    def _check_local(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        now = self._clock()
        self._purge_expired(now)
        key = (policy.name, identifier)
        entry = self._local.get(key)

        # No entry - start a new window
        if entry is None:
            entry = _WindowEntry(count=1, reset_at=now + policy.window_ms)
            self._local[key] = entry
            return RateLimitResult(
                success=True,
                limit=policy.max_requests,
                remaining=policy.max_requests - 1,
                reset_at=entry.reset_at,
            )

        if entry.count >= policy.max_requests:
            return RateLimitResult(
                success=False,
                limit=policy.max_requests,
                remaining=0,
                reset_at=entry.reset_at,
            )

        entry.count += 1
        return RateLimitResult(
            success=True,
            limit=policy.max_requests,
            remaining=policy.max_requests - entry.count,
            reset_at=entry.reset_at,
        )

    def _purge_expired(self, now: int) -> None:
        expired = [key for key, entry in self._local.items() if entry.reset_at < now]
        for key in expired:
            del self._local[key]

    async def _check_redis(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
        key = f"ratelimit:{policy.name}:{identifier}"
        now = self._clock()

        try:
            for _ in range(2):
                count, reset_at = await self._incr_window(key, policy, now)
                if reset_at is not None and reset_at >= now:
                    break
                # Stale or malformed window - drop it and count again
                logger.warning(f"Discarding stale rate limit entry for {policy.name}")
                await self._redis.delete(key)

            if reset_at is None:
                reset_at = now + policy.window_ms

            return RateLimitResult(
                success=count <= policy.max_requests,
                limit=policy.max_requests,
                remaining=max(0, policy.max_requests - count),
                reset_at=reset_at,
            )

        except RedisError as e:
            # Fail open: a store outage must not lock every user out
            logger.error(f"Rate limit store error for {policy.name}, allowing request: {e}")
            return RateLimitResult(
                success=True,
                limit=policy.max_requests,
                remaining=policy.max_requests - 1,
                reset_at=now + policy.window_ms,
            )

    async def _incr_window(
        self, key: str, policy: RateLimitPolicy, now: int
    ) -> Tuple[int, Optional[int]]:
        """
        Atomically count one request in the window stored at key.

        The first request of a window records resetAt; every request
        increments count, including those over the limit.
        """
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hsetnx(key, "resetAt", now + policy.window_ms)
            pipe.hincrby(key, "count", 1)
            pipe.hget(key, "resetAt")
            created, count, raw_reset = await pipe.execute()

        if created:
            await self._redis.pexpire(key, policy.window_ms)

        return int(count), _parse_reset_at(raw_reset)


def _parse_reset_at(raw) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def get_client_ip(request: Request) -> str:
    """
    Get the client IP for rate limiting.

    Honours X-Forwarded-For (first hop) and X-Real-IP from the reverse proxy,
    then falls back to the socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def chat_policy(settings) -> RateLimitPolicy:
    """Budget for starting new chat generations."""
    return RateLimitPolicy(
        name="chat",
        max_requests=settings.chat_rate_limit_max_requests,
        window_seconds=settings.chat_rate_limit_window_seconds,
    )


def recovery_policy(settings) -> RateLimitPolicy:
    """Budget for replaying cached responses."""
    return RateLimitPolicy(
        name="recovery",
        max_requests=settings.recovery_rate_limit_max_requests,
        window_seconds=settings.recovery_rate_limit_window_seconds,
    )
