"""Process-wide service container with one start/stop lifecycle."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import get_settings
from tokengate.core.logging import get_logger
from tokengate.data.cache import SharedCache
from tokengate.data.db import close_engine, get_engine
from tokengate.data.redis_client import RedisProvider
from tokengate.ledger import BudgetGuard, LedgerRepository, SpendAlertMonitor, TokenLedger
from tokengate.ratelimit import LocalRateLimitStore, RateLimiter

log = get_logger(__name__)


class GovernanceServices:
    """Owns the Redis client, cache, rate limiter, and ledger.

    Nothing here is module-global: construct one per process (or per test),
    ``await start()`` before serving and ``await stop()`` on shutdown.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        redis: RedisProvider | None = None,
        *,
        owns_engine: bool = False,
    ) -> None:
        settings = get_settings()
        self.engine = engine
        self.redis = redis or RedisProvider()
        self.cache = SharedCache(self.redis)
        self.local_store = LocalRateLimitStore(sweep_interval=settings.rate_limit_sweep_interval)
        self.rate_limiter = RateLimiter(self.redis, self.local_store)

        repo = LedgerRepository(engine)
        self.alerts = SpendAlertMonitor(repo)
        self.ledger = TokenLedger(repo, cache=self.cache, alerts=self.alerts)
        self.budget_guard = BudgetGuard(repo)
        self._owns_engine = owns_engine

    @classmethod
    async def from_settings(cls) -> GovernanceServices:
        return cls(await get_engine(), owns_engine=True)

    async def start(self) -> None:
        await self.local_store.start()
        log.info("governance_services_started", redis_enabled=self.redis.enabled)

    async def stop(self) -> None:
        # Alert checks still need the engine, so they finish first.
        await self.alerts.drain()
        await self.local_store.stop()
        await self.redis.close()
        if self._owns_engine:
            await close_engine()
        log.info("governance_services_stopped")
