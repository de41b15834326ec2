"""Sliding-window request rate limiting.

Two backends share one contract: ``check_and_consume`` admits a request iff
fewer than ``limit`` previously accepted requests fall inside the trailing
window, and records the request only when it is admitted. Rejected requests
leave the window untouched, so a client that keeps retrying is let back in
as soon as its oldest accepted request ages out.

The Redis backend fails open: if Redis is missing, slow or erroring, the
request is allowed and a warning is logged.
"""

import asyncio
import math
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.config import Settings
from src.utils.logger import get_logger

log = get_logger(__name__)

KEY_PREFIX = "ratelimit"

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at_ms: int
    limit: int
    retry_after_seconds: int = 0

    @property
    def reset_at_seconds(self) -> int:
        return math.ceil(self.reset_at_ms / 1000)

    def headers(self) -> dict[str, str]:
        """X-RateLimit-* response headers, plus Retry-After on denial."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


def _retry_after(oldest_ms: int, window_ms: int, now_ms: int) -> int:
    return max(1, math.ceil((oldest_ms + window_ms - now_ms) / 1000))


def select_rate_limit(authenticated: bool, settings: Settings) -> int:
    """Pick the ceiling for the caller's authentication state."""
    if authenticated:
        return settings.rate_limit_authenticated
    return settings.rate_limit_anonymous


def rate_limit_key(identity: str, action: str = "generation") -> str:
    return f"{KEY_PREFIX}:{action}:{identity}"


class RateLimiter(ABC):
    @abstractmethod
    async def check_and_consume(
        self, identity: str, limit: int, window_ms: int, action: str = "generation"
    ) -> RateLimitResult:
        """Admit or reject one request for ``identity``."""


class InMemoryRateLimiter(RateLimiter):
    """Per-process sliding window, for tests and single-worker development.

    There is no await between reading and writing a window, so each call is
    atomic on the event loop.
    """

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._windows: dict[str, list[int]] = {}

    async def check_and_consume(
        self, identity: str, limit: int, window_ms: int, action: str = "generation"
    ) -> RateLimitResult:
        now_ms = int(self._clock() * 1000)
        key = rate_limit_key(identity, action)
        cutoff = now_ms - window_ms
        accepted = [t for t in self._windows.get(key, []) if t > cutoff]

        if len(accepted) >= limit:
            self._windows[key] = accepted
            oldest = accepted[0]
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at_ms=oldest + window_ms,
                limit=limit,
                retry_after_seconds=_retry_after(oldest, window_ms, now_ms),
            )

        accepted.append(now_ms)
        self._windows[key] = accepted
        return RateLimitResult(
            allowed=True,
            remaining=limit - len(accepted),
            reset_at_ms=accepted[0] + window_ms,
            limit=limit,
        )

    def reset(self) -> None:
        self._windows.clear()


# Prune, count, and conditionally add in one atomic step.
# Returns {allowed, count_after, oldest_score}.
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
    redis.call('ZADD', key, now, member)
    redis.call('PEXPIRE', key, window)
    count = count + 1
    allowed = 1
end
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local oldest_score = now
if oldest[2] then
    oldest_score = tonumber(oldest[2])
end
return {allowed, count, oldest_score}
"""


class RedisRateLimiter(RateLimiter):
    """Sorted-set sliding window shared by every worker."""

    def __init__(
        self,
        redis: Optional[Redis],
        timeout_seconds: float = 0.5,
        clock: Clock = time.time,
    ):
        self._redis = redis
        self._timeout = timeout_seconds
        self._clock = clock
        self._script = redis.register_script(_SLIDING_WINDOW_LUA) if redis is not None else None

    async def check_and_consume(
        self, identity: str, limit: int, window_ms: int, action: str = "generation"
    ) -> RateLimitResult:
        now_ms = int(self._clock() * 1000)
        if self._script is None:
            return self._fail_open(limit, window_ms, now_ms, reason="redis not configured")

        key = rate_limit_key(identity, action)
        member = f"{now_ms}-{uuid.uuid4().hex[:12]}"
        try:
            allowed, count, oldest = await asyncio.wait_for(
                self._script(keys=[key], args=[now_ms, window_ms, limit, member]),
                timeout=self._timeout,
            )
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            return self._fail_open(limit, window_ms, now_ms, reason=str(e) or type(e).__name__)

        oldest = int(oldest)
        if not int(allowed):
            log.info("rate limit exceeded", key=key, limit=limit)
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at_ms=oldest + window_ms,
                limit=limit,
                retry_after_seconds=_retry_after(oldest, window_ms, now_ms),
            )
        return RateLimitResult(
            allowed=True,
            remaining=max(0, limit - int(count)),
            reset_at_ms=oldest + window_ms,
            limit=limit,
        )

    @staticmethod
    def _fail_open(limit: int, window_ms: int, now_ms: int, reason: str) -> RateLimitResult:
        log.warning("rate limiter unavailable, allowing request", reason=reason)
        return RateLimitResult(
            allowed=True, remaining=limit, reset_at_ms=now_ms + window_ms, limit=limit
        )
