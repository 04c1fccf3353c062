"""Redis-backed sliding window rate limiter.

Each (identity, route prefix) key is a sorted set of request timestamps, so
the limit applies to the trailing window ending now rather than to fixed
buckets. Pruning, counting, and admitting run in one Lua script, so a
rejected attempt is never visible to concurrent checks. Any Redis trouble
downgrades that single check to the per-process fixed-window store;
infrastructure problems never reject a request.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable, Mapping

import redis.asyncio as aioredis
from redis.commands.core import AsyncScript

from config.settings import get_settings
from tokengate.core.logging import get_logger
from tokengate.core.types import RateLimitResult, RateLimitRule
from tokengate.data.redis_client import RedisProvider
from tokengate.ratelimit.local_store import LocalRateLimitStore, now_ms
from tokengate.ratelimit.rules import RATE_LIMITS, match_rule

log = get_logger(__name__)

KEY_PREFIX = "rl:"

_ALLOW = RateLimitResult(allowed=True)

# KEYS[1] = window key; ARGV = now_ms, window_ms, max_requests, member.
# Returns {1, 0} when admitted, {0, retry_after_ms} when rejected.
SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])

redis.call("ZREMRANGEBYSCORE", key, 0, now - window)
if redis.call("ZCARD", key) < limit then
    redis.call("ZADD", key, now, ARGV[4])
    redis.call("PEXPIRE", key, window)
    return {1, 0}
end

local oldest = redis.call("ZRANGE", key, 0, 0, "WITHSCORES")
local retry = 0
if oldest[2] then
    retry = tonumber(oldest[2]) + window - now
end
if retry < 0 then
    retry = 0
end
return {0, retry}
"""


class RateLimiter:
    """Admission control per (identity, route)."""

    def __init__(
        self,
        provider: RedisProvider,
        local_store: LocalRateLimitStore | None = None,
        rules: Mapping[str, RateLimitRule] = RATE_LIMITS,
        clock: Callable[[], int] = now_ms,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._provider = provider
        self._local = local_store or LocalRateLimitStore(clock=clock)
        self._rules = rules
        self._clock = clock
        # EVALSHA plus a SCRIPT LOAD retry on a cold server, each bounded by
        # the socket timeout.
        self._timeout = (
            timeout
            if timeout is not None
            else settings.redis_connect_timeout + 2 * settings.redis_socket_timeout
        )
        self._script: AsyncScript | None = None
        self._script_client: aioredis.Redis | None = None

    @property
    def local_store(self) -> LocalRateLimitStore:
        return self._local

    async def check(self, identity: str, path: str) -> RateLimitResult:
        """Admit or reject one request; unmatched paths are always allowed."""
        matched = match_rule(path, self._rules)
        if matched is None:
            return _ALLOW

        prefix, rule = matched
        key = f"{identity}:{prefix}"

        r = self._provider.get()
        if r is None:
            return self._local.check(key, rule)

        try:
            result = await asyncio.wait_for(self._check_shared(r, key, rule), self._timeout)
        except (aioredis.RedisError, OSError, asyncio.TimeoutError) as exc:
            log.warning("ratelimit_redis_fallback", key=key, error=str(exc) or type(exc).__name__)
            return self._local.check(key, rule)

        if not result.allowed:
            log.info(
                "rate_limited",
                identity=identity,
                route=prefix,
                retry_after_ms=result.retry_after_ms,
            )
        return result

    def _script_for(self, r: aioredis.Redis) -> AsyncScript:
        # register_script only hashes the source; EVALSHA loads it on demand.
        if self._script is None or self._script_client is not r:
            self._script = r.register_script(SLIDING_WINDOW_LUA)
            self._script_client = r
        return self._script

    async def _check_shared(
        self, r: aioredis.Redis, key: str, rule: RateLimitRule
    ) -> RateLimitResult:
        now = self._clock()
        member = f"{now}:{random.random()}"
        allowed, retry_after_ms = await self._script_for(r)(
            keys=[f"{KEY_PREFIX}{key}"],
            args=[now, rule.window_ms, rule.max_requests, member],
        )
        if int(allowed) == 1:
            return _ALLOW
        return RateLimitResult(allowed=False, retry_after_ms=int(retry_after_ms))
