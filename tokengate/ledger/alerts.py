"""Monthly budget threshold alerts.

Fired after successful debits. Which thresholds were already announced is
kept in ``spend_alert_logs`` so alerts survive restarts and fire once across
all serving processes; the unique constraint settles races between them.

Debits hand the check off with ``schedule`` and never wait for it. Pending
checks are tracked so shutdown can ``drain`` them.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.exc import IntegrityError
from uuid_extensions import uuid7

from config.settings import get_settings
from tokengate.core.logging import get_logger
from tokengate.ledger.budget import month_start
from tokengate.ledger.plans import format_tokens
from tokengate.ledger.store import LedgerRepository

log = get_logger(__name__)

ALERT_THRESHOLDS: tuple[int, ...] = (50, 80, 100)


class SpendAlertMonitor:
    """Announce 50/80/100 % budget consumption. Never raises."""

    def __init__(
        self,
        repo: LedgerRepository,
        webhook_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._repo = repo
        self._webhook_url = (
            settings.spend_alert_webhook_url if webhook_url is None else webhook_url
        )
        self._client = http_client
        self._timeout = settings.spend_alert_timeout if timeout is None else timeout
        self._pending: set[asyncio.Task[list[int]]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, tenant_id: str) -> asyncio.Task[list[int]]:
        """Run ``check`` in the background; the caller does not wait."""
        task = asyncio.create_task(self.check(tenant_id), name=f"spend-alert-{tenant_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled check to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def check(self, tenant_id: str, now: datetime | None = None) -> list[int]:
        """Send any newly crossed alerts; returns the thresholds announced."""
        try:
            return await self._check(tenant_id, now or datetime.now(timezone.utc))
        except Exception as exc:  # noqa: BLE001
            log.warning(
                "spend_alert_check_failed",
                tenant_id=tenant_id,
                error=str(exc) or type(exc).__name__,
                exc_info=True,
            )
            return []

    async def _check(self, tenant_id: str, now: datetime) -> list[int]:
        account = await self._repo.get_account(tenant_id)
        if account is None or not account.monthly_token_budget or account.monthly_token_budget <= 0:
            return []

        budget = account.monthly_token_budget
        month_key = now.strftime("%Y-%m")
        used = await self._repo.sum_debits_since(tenant_id, month_start(now))
        usage_pct = used / budget * 100

        sent: list[int] = []
        for threshold in ALERT_THRESHOLDS:
            if usage_pct < threshold:
                continue
            if await self._repo.alert_sent(tenant_id, month_key, threshold):
                continue
            try:
                await self._repo.record_alert(str(uuid7()), tenant_id, month_key, threshold)
            except IntegrityError:
                # Another process claimed this alert first.
                continue

            name = account.name or tenant_id
            if threshold >= 100:
                message = (
                    f"{name} has exceeded their monthly token budget "
                    f"({format_tokens(used)} of {format_tokens(budget)} used)."
                )
            else:
                message = (
                    f"{name} has used {threshold}% of their monthly token budget "
                    f"({format_tokens(used)} of {format_tokens(budget)})."
                )
            await self._deliver({
                "tenant_id": tenant_id,
                "tenant_name": name,
                "threshold": threshold,
                "tokens_used": used,
                "token_budget": budget,
                "message": message,
            })
            sent.append(threshold)
        return sent

    async def _deliver(self, payload: dict[str, Any]) -> None:
        if not self._webhook_url:
            log.info("spend_alert", **payload)
            return
        try:
            if self._client is not None:
                resp = await self._client.post(self._webhook_url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._webhook_url, json=payload)
            resp.raise_for_status()
            log.info("spend_alert_sent", tenant_id=payload["tenant_id"], threshold=payload["threshold"])
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.warning(
                "spend_alert_webhook_failed",
                tenant_id=payload["tenant_id"],
                threshold=payload["threshold"],
                error=str(exc),
            )
