"""Shared Redis client — one lazily-built connection pool per process."""

from __future__ import annotations

import redis.asyncio as aioredis

from config.settings import get_settings
from tokengate.core.logging import get_logger

log = get_logger(__name__)


class RedisProvider:
    """Owns the process's Redis client.

    The client is built on first use from ``redis_url``. An empty URL
    disables Redis entirely and ``get()`` returns ``None``; callers treat
    that exactly like an unreachable server. A pre-built client can be
    injected instead (tests, custom pools).
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        connect_timeout: float | None = None,
        socket_timeout: float | None = None,
        client: aioredis.Redis | None = None,
    ) -> None:
        settings = get_settings()
        self._url = settings.redis_url.get_secret_value() if url is None else url
        self._connect_timeout = (
            settings.redis_connect_timeout if connect_timeout is None else connect_timeout
        )
        self._socket_timeout = (
            settings.redis_socket_timeout if socket_timeout is None else socket_timeout
        )
        self._client: aioredis.Redis | None = client
        self._disabled = client is None and not self._url

        if self._disabled:
            log.warning("redis_disabled", reason="redis_url not set, using in-memory fallback")

    @property
    def enabled(self) -> bool:
        return not self._disabled

    def get(self) -> aioredis.Redis | None:
        """Return the shared client, building it on first call."""
        if self._disabled:
            return None
        if self._client is None:
            # from_url does not connect; the pool dials on the first command
            # and every command is bounded by the socket timeouts.
            self._client = aioredis.from_url(
                self._url,
                decode_responses=True,
                socket_connect_timeout=self._connect_timeout,
                socket_timeout=self._socket_timeout,
                retry_on_timeout=False,
            )
            log.info("redis_client_created")
        return self._client

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        client = self.get()
        if client is None:
            return False
        try:
            return bool(await client.ping())
        except (aioredis.RedisError, OSError):
            return False

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.info("redis_closed")
