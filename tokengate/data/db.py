"""Durable store — table definitions and the async engine singleton.

PostgreSQL (asyncpg) in production. SQLite (aiosqlite) is supported for
local development and tests; its transactions start with ``BEGIN IMMEDIATE``
so concurrent writers queue on the database lock instead of failing when a
read lock would need upgrading.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from config.settings import get_settings
from tokengate.core.logging import get_logger

log = get_logger(__name__)

metadata = MetaData()

# ── Tables ───────────────────────────────────────────────────────

tenant_accounts = Table(
    "tenant_accounts",
    metadata,
    Column("tenant_id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("plan", String, nullable=False, default="FREE"),
    Column("token_balance", Integer, nullable=False, default=0),
    Column("monthly_token_budget", Integer, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("token_balance >= 0", name="ck_tenant_accounts_balance_non_negative"),
)

ledger_entries = Table(
    "ledger_entries",
    metadata,
    Column("id", String, primary_key=True),
    Column("tenant_id", String, nullable=False),
    Column("user_id", String, nullable=True),
    Column("type", String, nullable=False),
    Column("amount", Integer, nullable=False),
    Column("balance_after", Integer, nullable=False),
    Column("reason", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("usage_log_id", String, nullable=True, unique=True),
    Column("payment_ref", String, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=True),
    CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    CheckConstraint("type IN ('CREDIT', 'DEBIT')", name="ck_ledger_entries_type"),
    Index("ix_ledger_entries_tenant_created", "tenant_id", "created_at"),
    Index("ix_ledger_entries_tenant_type_created", "tenant_id", "type", "created_at"),
)

spend_alert_logs = Table(
    "spend_alert_logs",
    metadata,
    Column("id", String, primary_key=True),
    Column("tenant_id", String, nullable=False),
    Column("month_key", String, nullable=False),
    Column("threshold", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    UniqueConstraint("tenant_id", "month_key", "threshold", name="uq_spend_alert_once"),
)


# ── Engine ───────────────────────────────────────────────────────

_engine: AsyncEngine | None = None


def build_engine(db_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine for ``db_url`` with dialect-specific setup."""
    if db_url.startswith("sqlite"):
        engine = create_async_engine(
            db_url,
            echo=False,
            connect_args={"timeout": 30},
            **kwargs,
        )
        _install_sqlite_locking(engine)
        return engine

    settings = get_settings()
    return create_async_engine(
        db_url,
        echo=False,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        **kwargs,
    )


def _install_sqlite_locking(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        # Hand transaction control to the "begin" hook below.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


async def get_engine() -> AsyncEngine:
    """Get or create the async database engine (singleton)."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        settings = get_settings()
        db_url = settings.database_url.get_secret_value()
        _engine = build_engine(db_url)
        log.info("database_engine_created", host=db_url.split("@")[-1].split("?")[0])
    return _engine


async def init_schema(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    engine = engine or await get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    log.info("schema_initialized")


async def close_engine() -> None:
    """Dispose the database engine."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        log.info("database_engine_closed")
