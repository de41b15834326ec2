"""Redis cache for generated design systems.

Keys are derived from the normalized request so that casing and whitespace
differences hit the same entry. The cache is strictly best-effort: a missing
or failing Redis is a miss on read and a no-op on write.
"""

import asyncio
import hashlib
import json
import re
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.utils.logger import get_logger

log = get_logger(__name__)

KEY_PREFIX = "design-system:"
DEFAULT_TTL_SECONDS = 3600

_WHITESPACE = re.compile(r"\s+")
_CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError, ValueError)


def normalize(value: Optional[str]) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", (value or "").strip().lower())


def cache_key(brand_description: str, industry: Optional[str], audience: Optional[str]) -> str:
    payload = json.dumps(
        {
            "brand": normalize(brand_description),
            "industry": normalize(industry),
            "audience": normalize(audience),
        },
        sort_keys=True,
    )
    return KEY_PREFIX + hashlib.sha256(payload.encode("utf-8")).hexdigest()


class GenerationCache:
    def __init__(
        self,
        redis: Optional[Redis],
        timeout_seconds: float = 0.5,
        enabled: bool = True,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self._redis = redis if enabled else None
        self._timeout = timeout_seconds
        self._default_ttl = default_ttl_seconds

    @property
    def available(self) -> bool:
        return self._redis is not None

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        if self._redis is None:
            return None
        try:
            raw = await asyncio.wait_for(self._redis.get(key), timeout=self._timeout)
            if raw is None:
                log.debug("cache miss", key=key)
                return None
            log.info("cache hit", key=key)
            return json.loads(raw)
        except _CACHE_ERRORS as e:
            log.warning("cache read failed", key=key, error=str(e) or type(e).__name__)
            return None

    async def put(self, key: str, payload: dict[str, Any], ttl_seconds: Optional[int] = None) -> bool:
        """Store ``payload``. ``None`` uses the default TTL; a TTL of zero or less stores nothing."""
        if self._redis is None:
            return False
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            log.debug("cache write skipped", key=key, ttl=ttl)
            return False
        try:
            await asyncio.wait_for(
                self._redis.set(key, json.dumps(payload), ex=ttl), timeout=self._timeout
            )
        except (*_CACHE_ERRORS, TypeError) as e:
            log.warning("cache write failed", key=key, error=str(e) or type(e).__name__)
            return False
        log.debug("cache stored", key=key, ttl=ttl)
        return True

    async def invalidate(self, key: str) -> bool:
        """Delete one entry. Accepts the full key or just its digest."""
        if self._redis is None:
            return False
        if not key.startswith(KEY_PREFIX):
            key = KEY_PREFIX + key
        try:
            deleted = await asyncio.wait_for(self._redis.delete(key), timeout=self._timeout)
        except _CACHE_ERRORS as e:
            log.warning("cache invalidate failed", key=key, error=str(e) or type(e).__name__)
            return False
        log.info("cache entry invalidated", key=key, deleted=bool(deleted))
        return bool(deleted)

    async def clear_all(self) -> int:
        """Delete every design-system entry. Returns the number of keys removed."""
        if self._redis is None:
            return 0
        deleted = 0
        try:
            batch: list = []
            async for key in self._redis.scan_iter(match=f"{KEY_PREFIX}*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    deleted += await self._redis.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._redis.delete(*batch)
        except _CACHE_ERRORS as e:
            log.warning("cache clear failed", deleted=deleted, error=str(e) or type(e).__name__)
            return deleted
        log.info("cache cleared", deleted=deleted)
        return deleted
