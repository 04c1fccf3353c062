"""Per-process fixed-window counters used when Redis is unreachable.

Weaker than the shared sliding window (a client can burst up to twice the
limit across a window boundary, and each process counts separately), so it
only backs degraded-mode checks.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from dataclasses import dataclass

from tokengate.core.logging import get_logger
from tokengate.core.types import RateLimitResult, RateLimitRule

log = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _Window:
    count: int
    reset_at: int


class LocalRateLimitStore:
    """In-memory ``{count, reset_at}`` map with a background sweep task."""

    def __init__(
        self,
        sweep_interval: float = 300.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._windows: dict[str, _Window] = {}
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._windows)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def check(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        now = self._clock()
        window = self._windows.get(key)

        if window is None or now > window.reset_at:
            self._windows[key] = _Window(count=1, reset_at=now + rule.window_ms)
            return RateLimitResult(allowed=True)

        if window.count >= rule.max_requests:
            return RateLimitResult(allowed=False, retry_after_ms=window.reset_at - now)

        window.count += 1
        return RateLimitResult(allowed=True)

    def sweep(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock()
        expired = [k for k, w in self._windows.items() if now > w.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._sweep_loop(), name="ratelimit-sweep")
        log.info("local_ratelimit_sweep_started", interval_s=self._sweep_interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._windows.clear()
        log.info("local_ratelimit_sweep_stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            removed = self.sweep()
            if removed:
                log.debug("local_ratelimit_swept", removed=removed, remaining=len(self._windows))
