"""Tests for monthly spend alerts."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from tokengate.core.types import TenantAccount
from tokengate.ledger.alerts import SpendAlertMonitor

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


def _repo(used: int, budget: int | None = 100, already: set[int] | None = None) -> MagicMock:
    already = already or set()
    repo = MagicMock()
    repo.get_account = AsyncMock(
        return_value=TenantAccount(
            tenant_id="t1", name="Acme", token_balance=500, monthly_token_budget=budget
        )
    )
    repo.sum_debits_since = AsyncMock(return_value=used)
    repo.alert_sent = AsyncMock(side_effect=lambda _t, _m, threshold: threshold in already)
    repo.record_alert = AsyncMock()
    return repo


class TestThresholds:
    @pytest.mark.asyncio
    async def test_below_first_threshold(self) -> None:
        repo = _repo(used=49)
        assert await SpendAlertMonitor(repo, webhook_url="").check("t1", NOW) == []
        repo.record_alert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_crossing_several_at_once(self) -> None:
        repo = _repo(used=85)
        sent = await SpendAlertMonitor(repo, webhook_url="").check("t1", NOW)
        assert sent == [50, 80]
        month_keys = {c.args[2] for c in repo.record_alert.await_args_list}
        assert month_keys == {"2026-03"}

    @pytest.mark.asyncio
    async def test_already_sent_skipped(self) -> None:
        repo = _repo(used=100, already={50, 80})
        assert await SpendAlertMonitor(repo, webhook_url="").check("t1", NOW) == [100]

    @pytest.mark.asyncio
    async def test_no_budget_no_alerts(self) -> None:
        repo = _repo(used=1_000, budget=None)
        assert await SpendAlertMonitor(repo, webhook_url="").check("t1", NOW) == []
        repo.sum_debits_since.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_race_is_skipped(self) -> None:
        repo = _repo(used=60)
        repo.record_alert.side_effect = IntegrityError("insert", {}, Exception("unique"))
        assert await SpendAlertMonitor(repo, webhook_url="").check("t1", NOW) == []

    @pytest.mark.asyncio
    async def test_store_failure_never_raises(self) -> None:
        repo = _repo(used=60)
        repo.sum_debits_since.side_effect = OperationalError("select", {}, Exception("down"))
        assert await SpendAlertMonitor(repo, webhook_url="").check("t1", NOW) == []


class TestWebhook:
    @pytest.mark.asyncio
    async def test_posts_payload(self) -> None:
        received: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(204)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            monitor = SpendAlertMonitor(
                _repo(used=100), webhook_url="https://hooks.example/alerts", http_client=client
            )
            sent = await monitor.check("t1", NOW)

        assert sent == [50, 80, 100]
        assert [p["threshold"] for p in received] == [50, 80, 100]
        assert "exceeded" in received[-1]["message"]
        assert received[0]["tokens_used"] == 100

    @pytest.mark.asyncio
    async def test_webhook_failure_still_records(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        repo = _repo(used=55)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            monitor = SpendAlertMonitor(
                repo, webhook_url="https://hooks.example/alerts", http_client=client
            )
            sent = await monitor.check("t1", NOW)

        assert sent == [50]
        repo.record_alert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_webhook_url_does_not_stop_later_thresholds(self) -> None:
        client = AsyncMock()
        client.post.side_effect = httpx.InvalidURL("Invalid port: 'b:c'")
        repo = _repo(used=90)
        monitor = SpendAlertMonitor(repo, webhook_url="http://a:b:c", http_client=client)

        assert await monitor.check("t1", NOW) == [50, 80]
        assert client.post.await_count == 2


class TestNeverRaises:
    @pytest.mark.asyncio
    async def test_unexpected_error_is_swallowed(self) -> None:
        repo = _repo(used=60)
        repo.get_account.side_effect = RuntimeError("boom")
        assert await SpendAlertMonitor(repo, webhook_url="").check("t1", NOW) == []

    @pytest.mark.asyncio
    async def test_malformed_webhook_url_without_client(self) -> None:
        monitor = SpendAlertMonitor(_repo(used=60), webhook_url="http://a:b:c")
        assert await monitor.check("t1", NOW) == [50]


class TestBackgroundChecks:
    @pytest.mark.asyncio
    async def test_schedule_then_drain(self) -> None:
        release = asyncio.Event()
        repo = _repo(used=60)

        async def slow_sum(*args: object, **kwargs: object) -> int:
            await release.wait()
            return 60

        repo.sum_debits_since.side_effect = slow_sum
        monitor = SpendAlertMonitor(repo, webhook_url="")

        task = monitor.schedule("t1")
        await asyncio.sleep(0)
        assert monitor.pending == 1
        assert not task.done()

        release.set()
        await monitor.drain()

        assert monitor.pending == 0
        assert task.result() == [50]

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self) -> None:
        monitor = SpendAlertMonitor(_repo(used=0), webhook_url="")
        await monitor.drain()
        assert monitor.pending == 0
