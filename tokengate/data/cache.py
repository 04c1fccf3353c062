"""Redis cache layer for hot-path reads (tenant balances).

The cache is never authoritative. Every operation degrades to a miss/no-op
when Redis is disabled or unreachable, so callers always fall back to the
durable store.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis

from tokengate.core.logging import get_logger
from tokengate.data.redis_client import RedisProvider

log = get_logger(__name__)

CACHE_PREFIX = "cache:"

_REDIS_ERRORS = (aioredis.RedisError, OSError)


class SharedCache:
    """Best-effort JSON key/value cache with per-key TTL."""

    def __init__(self, provider: RedisProvider, prefix: str = CACHE_PREFIX) -> None:
        self._provider = provider
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` on miss or Redis trouble."""
        r = self._provider.get()
        if r is None:
            return None
        try:
            raw = await r.get(self._key(key))
        except _REDIS_ERRORS as exc:
            log.warning("cache_get_failed", key=key, error=str(exc))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.warning("cache_value_corrupt", key=key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        r = self._provider.get()
        if r is None:
            return
        try:
            await r.setex(self._key(key), ttl_seconds, json.dumps(value, default=str))
        except _REDIS_ERRORS as exc:
            log.warning("cache_set_failed", key=key, error=str(exc))

    async def delete(self, key: str) -> None:
        """Invalidate a key."""
        r = self._provider.get()
        if r is None:
            return
        try:
            await r.delete(self._key(key))
        except _REDIS_ERRORS as exc:
            log.warning("cache_delete_failed", key=key, error=str(exc))

    async def ping(self) -> bool:
        return await self._provider.ping()
