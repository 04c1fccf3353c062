"""Shared pytest fixtures.

Async tests run under pytest-asyncio (``@pytest.mark.asyncio``). Settings are
rebuilt per test from a clean environment so no test reaches a real Redis or
webhook by accident.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

import config.settings as settings_module
from tokengate.data.db import build_engine, init_schema
from tokengate.ledger import LedgerRepository, TokenLedger


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fresh ``get_settings()`` singleton with Redis and webhooks switched off."""
    monkeypatch.setenv("TOKENGATE_ENV", "dev")
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("SPEND_ALERT_WEBHOOK_URL", "")
    monkeypatch.setattr(settings_module, "_settings_instance", None)


@pytest_asyncio.fixture()
async def sqlite_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite database with the schema created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await init_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def ledger(sqlite_engine: AsyncEngine) -> TokenLedger:
    """Ledger over the SQLite database, without cache or alerts."""
    return TokenLedger(LedgerRepository(sqlite_engine), balance_ttl=10)
