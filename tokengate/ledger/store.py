"""DB-backed ledger repository — tenant accounts and append-only entries."""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from tokengate.core.logging import get_logger
from tokengate.core.types import (
    LedgerEntry,
    TenantAccount,
    TenantPlan,
    TokenReason,
    TransactionType,
)
from tokengate.data.db import ledger_entries, spend_alert_logs, tenant_accounts

log = get_logger(__name__)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class LedgerRepository:
    """Async SQL access for balances and ledger entries.

    Mutating methods take an open connection so the caller can group them
    into one transaction. Read methods open their own when none is given.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Commit on clean exit, roll back on any exception."""
        async with self._engine.begin() as conn:
            yield conn

    @asynccontextmanager
    async def _connection(self, conn: AsyncConnection | None) -> AsyncIterator[AsyncConnection]:
        if conn is not None:
            yield conn
        else:
            async with self._engine.begin() as fresh:
                yield fresh

    # ── Accounts ─────────────────────────────────────────────────

    async def get_account(
        self, tenant_id: str, conn: AsyncConnection | None = None
    ) -> TenantAccount | None:
        async with self._connection(conn) as c:
            result = await c.execute(
                select(tenant_accounts).where(tenant_accounts.c.tenant_id == tenant_id)
            )
            row = result.mappings().first()
        if row is None:
            return None
        return self._row_to_account(row)

    async def insert_account(self, conn: AsyncConnection, account: TenantAccount) -> None:
        await conn.execute(
            insert(tenant_accounts).values(
                tenant_id=account.tenant_id,
                name=account.name,
                plan=account.plan.value,
                token_balance=0,
                monthly_token_budget=account.monthly_token_budget,
                created_at=account.created_at,
            )
        )

    async def set_budget(self, tenant_id: str, budget: int | None) -> bool:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                update(tenant_accounts)
                .where(tenant_accounts.c.tenant_id == tenant_id)
                .values(monthly_token_budget=budget)
            )
        return result.rowcount > 0

    async def read_balance(
        self, tenant_id: str, conn: AsyncConnection | None = None
    ) -> int | None:
        async with self._connection(conn) as c:
            result = await c.execute(
                select(tenant_accounts.c.token_balance).where(
                    tenant_accounts.c.tenant_id == tenant_id
                )
            )
            value = result.scalar_one_or_none()
        return None if value is None else int(value)

    # ── Balance mutation ─────────────────────────────────────────

    async def conditional_debit(
        self, conn: AsyncConnection, tenant_id: str, amount: int
    ) -> int | None:
        """Decrement only if the balance covers ``amount``.

        One statement, so there is no read-then-write gap for a concurrent
        deduct to slip through. Returns the new balance, or ``None`` when no
        row matched (unknown tenant or insufficient balance).
        """
        result = await conn.execute(
            update(tenant_accounts)
            .where(
                tenant_accounts.c.tenant_id == tenant_id,
                tenant_accounts.c.token_balance >= amount,
            )
            .values(token_balance=tenant_accounts.c.token_balance - amount)
            .returning(tenant_accounts.c.token_balance)
        )
        value = result.scalar_one_or_none()
        return None if value is None else int(value)

    async def increment_balance(
        self, conn: AsyncConnection, tenant_id: str, amount: int
    ) -> int | None:
        """Atomic add; ``None`` when the tenant does not exist."""
        result = await conn.execute(
            update(tenant_accounts)
            .where(tenant_accounts.c.tenant_id == tenant_id)
            .values(token_balance=tenant_accounts.c.token_balance + amount)
            .returning(tenant_accounts.c.token_balance)
        )
        value = result.scalar_one_or_none()
        return None if value is None else int(value)

    # ── Entries ──────────────────────────────────────────────────

    async def append_entry(self, conn: AsyncConnection, entry: LedgerEntry) -> None:
        await conn.execute(
            insert(ledger_entries).values(
                id=entry.id,
                tenant_id=entry.tenant_id,
                user_id=entry.user_id,
                type=entry.type.value,
                amount=entry.amount,
                balance_after=entry.balance_after,
                reason=entry.reason.value,
                description=entry.description,
                usage_log_id=entry.usage_log_id,
                payment_ref=entry.payment_ref,
                created_at=entry.created_at,
                expires_at=entry.expires_at,
            )
        )

    async def sum_debits_since(
        self, tenant_id: str, since: datetime, conn: AsyncConnection | None = None
    ) -> int:
        async with self._connection(conn) as c:
            result = await c.execute(
                select(func.coalesce(func.sum(ledger_entries.c.amount), 0)).where(
                    ledger_entries.c.tenant_id == tenant_id,
                    ledger_entries.c.type == TransactionType.DEBIT.value,
                    ledger_entries.c.created_at >= since,
                )
            )
            return int(result.scalar() or 0)

    async def sum_by_type(self, tenant_id: str) -> dict[TransactionType, int]:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                select(ledger_entries.c.type, func.sum(ledger_entries.c.amount))
                .where(ledger_entries.c.tenant_id == tenant_id)
                .group_by(ledger_entries.c.type)
            )
            totals = {TransactionType.CREDIT: 0, TransactionType.DEBIT: 0}
            for type_, total in result.all():
                totals[TransactionType(type_)] = int(total or 0)
        return totals

    async def list_entries(self, tenant_id: str, limit: int, offset: int) -> list[LedgerEntry]:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                select(ledger_entries)
                .where(ledger_entries.c.tenant_id == tenant_id)
                .order_by(ledger_entries.c.created_at.desc(), ledger_entries.c.id.desc())
                .limit(limit)
                .offset(offset)
            )
            rows = result.mappings().all()
        return [self._row_to_entry(r) for r in rows]

    async def count_entries(self, tenant_id: str) -> int:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                select(func.count()).select_from(ledger_entries).where(
                    ledger_entries.c.tenant_id == tenant_id
                )
            )
            return int(result.scalar() or 0)

    # ── Spend alerts ─────────────────────────────────────────────

    async def alert_sent(self, tenant_id: str, month_key: str, threshold: int) -> bool:
        async with self._engine.begin() as conn:
            result = await conn.execute(
                select(spend_alert_logs.c.id).where(
                    spend_alert_logs.c.tenant_id == tenant_id,
                    spend_alert_logs.c.month_key == month_key,
                    spend_alert_logs.c.threshold == threshold,
                )
            )
            return result.first() is not None

    async def record_alert(
        self, alert_id: str, tenant_id: str, month_key: str, threshold: int
    ) -> None:
        """Insert the alert marker; raises ``IntegrityError`` if already present."""
        async with self._engine.begin() as conn:
            await conn.execute(
                insert(spend_alert_logs).values(
                    id=alert_id,
                    tenant_id=tenant_id,
                    month_key=month_key,
                    threshold=threshold,
                    created_at=datetime.now(timezone.utc),
                )
            )

    # ── Row mapping ──────────────────────────────────────────────

    @staticmethod
    def _row_to_account(r: Any) -> TenantAccount:
        try:
            plan = TenantPlan(r["plan"])
        except ValueError:
            plan = TenantPlan.FREE
        return TenantAccount(
            tenant_id=r["tenant_id"],
            name=r["name"],
            plan=plan,
            token_balance=int(r["token_balance"]),
            monthly_token_budget=r["monthly_token_budget"],
            created_at=_aware(r["created_at"]),  # type: ignore[arg-type]
        )

    @staticmethod
    def _row_to_entry(r: Any) -> LedgerEntry:
        return LedgerEntry(
            id=r["id"],
            tenant_id=r["tenant_id"],
            user_id=r["user_id"],
            type=TransactionType(r["type"]),
            amount=int(r["amount"]),
            balance_after=int(r["balance_after"]),
            reason=TokenReason(r["reason"]),
            description=r["description"],
            usage_log_id=r["usage_log_id"],
            payment_ref=r["payment_ref"],
            created_at=_aware(r["created_at"]),  # type: ignore[arg-type]
            expires_at=_aware(r["expires_at"]),
        )
