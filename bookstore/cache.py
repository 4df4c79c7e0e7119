import json
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from bookstore.config import Settings
from bookstore.errors import ConfigurationError
from bookstore.keys import CacheKey

logger = logging.getLogger(__name__)

# Stored in place of a row that does not exist (cache penetration guard).
NOT_FOUND_PLACEHOLDER = "*"


class _Sentinel:
    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name


MISS = _Sentinel("MISS")
NOT_FOUND = _Sentinel("NOT_FOUND")

_BACKEND_ERRORS = (RedisError, OSError)


class CacheManager:
    """
    Cache-aside manager backed by Redis.

    All public methods are safe to call even when Redis is unavailable:
    reads report a miss and writes are skipped, so callers fall through
    to the database. A manager built without a client is permanently
    disabled, which is how tests and cache-less deployments run.
    """

    def __init__(
        self,
        client: redis.Redis | None,
        ttl: int = 7 * 24 * 3600,
        not_found_ttl: int = 60,
        expiry_deviation: float = 0.05,
    ) -> None:
        self._redis = client
        self._ttl = ttl
        self._not_found_ttl = not_found_ttl
        self._deviation = expiry_deviation
        self._hits: int = 0
        self._misses: int = 0

    @classmethod
    def from_url(cls, url: str, settings: Settings) -> "CacheManager":
        """
        Build a manager for the Redis at *url*.

        No connection is opened here; a malformed URL still fails
        immediately with ``ConfigurationError``.
        """
        try:
            client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )
        except ValueError as exc:
            raise ConfigurationError(f"malformed cache url: {exc}") from exc
        return cls(
            client,
            ttl=settings.CACHE_TTL_ROW,
            not_found_ttl=settings.CACHE_TTL_NOT_FOUND,
            expiry_deviation=settings.CACHE_EXPIRY_DEVIATION,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        """Return True when the backend answers; never raises."""
        if not self._redis:
            return False
        try:
            await self._redis.ping()
            return True
        except _BACKEND_ERRORS as exc:
            logger.warning("Redis ping failed, reads will fall through to the database: %s", exc)
            return False

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    def expiry(self, ttl: int) -> int:
        """
        Return *ttl* randomised by the configured deviation.

        Entries written in the same burst then expire at different times
        instead of all hitting the database together.
        """
        if self._deviation <= 0:
            return ttl
        factor = 1 + random.uniform(-self._deviation, self._deviation)
        return max(1, int(ttl * factor))

    async def get(self, key: CacheKey) -> Any:
        """
        Return the cached value for *key*.

        Returns ``NOT_FOUND`` when the not-found placeholder is stored and
        ``MISS`` on a miss, a backend error, or an undecodable payload.
        """
        if not self._redis:
            self._misses += 1
            return MISS
        try:
            data = await self._redis.get(str(key))
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache GET error for key=%s: %s", key, exc)
            self._misses += 1
            return MISS
        if data is None:
            logger.debug("Cache MISS: %s", key)
            self._misses += 1
            return MISS
        self._hits += 1
        if data == NOT_FOUND_PLACEHOLDER:
            return NOT_FOUND
        try:
            return json.loads(data)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            self._hits -= 1
            self._misses += 1
            await self.delete(key)
            return MISS

    async def set(self, key: CacheKey, value: Any, ttl: int | None = None) -> None:
        """
        Persist *value* under *key* with a jittered expiry.

        Redis failures are logged but never propagated.
        """
        if not self._redis:
            return
        try:
            serialised = json.dumps(value, default=str)
            await self._redis.set(str(key), serialised, ex=self.expiry(ttl or self._ttl))
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache SET error for key=%s: %s", key, exc)

    async def set_not_found(self, key: CacheKey) -> None:
        """Store the not-found placeholder under *key* with the short expiry."""
        if not self._redis:
            return
        try:
            await self._redis.set(
                str(key), NOT_FOUND_PLACEHOLDER, ex=self.expiry(self._not_found_ttl)
            )
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache SET error for key=%s: %s", key, exc)

    async def delete(self, *keys: CacheKey) -> None:
        """
        Remove *keys*. A failure leaves the entries to expire naturally.
        """
        if not self._redis or not keys:
            return
        names = sorted({str(k) for k in keys})
        try:
            await self._redis.delete(*names)
            logger.debug("Cache invalidated %d key(s): %s", len(names), names)
        except _BACKEND_ERRORS as exc:
            logger.warning("Cache DELETE error for keys=%s: %s", names, exc)

    async def take(
        self,
        key: CacheKey,
        query: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
    ) -> Any:
        """
        Return the value for *key*, loading it with *query* on a miss.

        *query* returns a JSON-serialisable value or None for "does not
        exist"; None is cached as the not-found placeholder. Errors from
        *query* propagate and leave the cache untouched.
        """
        cached = await self.get(key)
        if cached is NOT_FOUND:
            return None
        if cached is not MISS:
            return cached

        value = await query()
        if value is None:
            await self.set_not_found(key)
        else:
            await self.set(key, value, ttl=ttl)
        return value

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of hit/miss counters."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }
