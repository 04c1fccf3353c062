"""Token ledger: race-safe, auditable balance mutation and query.

Every mutation runs in one durable transaction: the balance update and its
ledger entry commit or roll back together. The cache only speeds up
``get_balance`` and is invalidated after each committed mutation.
"""

from __future__ import annotations

from datetime import datetime, timezone

from uuid_extensions import uuid7

from config.settings import get_settings
from tokengate.core.exceptions import (
    DuplicateTenantError,
    InvalidAmountError,
    TenantNotFoundError,
)
from tokengate.core.logging import get_logger
from tokengate.core.types import (
    CreditResult,
    DebitFailure,
    DebitResult,
    DebitSuccess,
    LedgerEntry,
    TenantAccount,
    TenantPlan,
    TokenReason,
    TransactionPage,
    TransactionType,
)
from tokengate.data.cache import SharedCache
from tokengate.ledger.alerts import SpendAlertMonitor
from tokengate.ledger.budget import check_budget, month_start
from tokengate.ledger.plans import get_plan_limits
from tokengate.ledger.store import LedgerRepository

log = get_logger(__name__)

MAX_PAGE_SIZE = 100


def balance_cache_key(tenant_id: str) -> str:
    return f"balance:{tenant_id}"


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        msg = f"token amount must be a positive integer, got {amount!r}"
        raise InvalidAmountError(msg, {"amount": amount})


class TokenLedger:
    """Authoritative tenant balances backed by the durable store."""

    def __init__(
        self,
        repo: LedgerRepository,
        cache: SharedCache | None = None,
        alerts: SpendAlertMonitor | None = None,
        balance_ttl: int | None = None,
    ) -> None:
        self._repo = repo
        self._cache = cache
        self._alerts = alerts
        self._balance_ttl = get_settings().balance_cache_ttl if balance_ttl is None else balance_ttl

    @property
    def repository(self) -> LedgerRepository:
        return self._repo

    # ── Mutations ────────────────────────────────────────────────

    async def deduct(
        self,
        tenant_id: str,
        amount: int,
        reason: TokenReason,
        *,
        user_id: str | None = None,
        description: str | None = None,
        usage_log_id: str | None = None,
    ) -> DebitResult:
        """Charge ``amount`` tokens if both the budget and the balance allow.

        Returns ``DebitFailure`` (no mutation, no entry) when the monthly
        budget would be exceeded or the balance is insufficient.
        """
        _check_amount(amount)

        async with self._repo.transaction() as conn:
            account = await self._repo.get_account(tenant_id, conn)
            if account is None:
                raise TenantNotFoundError(f"tenant {tenant_id} not found", {"tenant_id": tenant_id})

            if account.monthly_token_budget:
                used = await self._repo.sum_debits_since(tenant_id, month_start(), conn)
                decision = check_budget(used, amount, account.monthly_token_budget)
                if not decision.allowed:
                    log.info(
                        "deduct_rejected_budget",
                        tenant_id=tenant_id,
                        amount=amount,
                        used=used,
                        budget=account.monthly_token_budget,
                    )
                    return DebitFailure(balance=account.token_balance, required=amount)

            new_balance = await self._repo.conditional_debit(conn, tenant_id, amount)
            if new_balance is None:
                current = await self._repo.read_balance(tenant_id, conn)
                log.info(
                    "deduct_rejected_balance",
                    tenant_id=tenant_id,
                    amount=amount,
                    balance=current,
                )
                return DebitFailure(balance=current or 0, required=amount)

            entry = LedgerEntry(
                id=str(uuid7()),
                tenant_id=tenant_id,
                user_id=user_id,
                type=TransactionType.DEBIT,
                amount=amount,
                balance_after=new_balance,
                reason=reason,
                description=description,
                usage_log_id=usage_log_id,
                created_at=datetime.now(timezone.utc),
            )
            await self._repo.append_entry(conn, entry)

        log.info(
            "tokens_deducted",
            tenant_id=tenant_id,
            amount=amount,
            reason=reason.value,
            balance=new_balance,
        )
        await self._invalidate(tenant_id)
        if self._alerts is not None:
            self._alerts.schedule(tenant_id)
        return DebitSuccess(new_balance=new_balance, transaction_id=entry.id)

    async def credit(
        self,
        tenant_id: str,
        amount: int,
        reason: TokenReason,
        *,
        user_id: str | None = None,
        description: str | None = None,
        payment_ref: str | None = None,
        expires_at: datetime | None = None,
    ) -> CreditResult:
        """Add tokens (plan allocation, top-up, refund, admin grant)."""
        _check_amount(amount)

        async with self._repo.transaction() as conn:
            new_balance = await self._repo.increment_balance(conn, tenant_id, amount)
            if new_balance is None:
                raise TenantNotFoundError(f"tenant {tenant_id} not found", {"tenant_id": tenant_id})

            entry = LedgerEntry(
                id=str(uuid7()),
                tenant_id=tenant_id,
                user_id=user_id,
                type=TransactionType.CREDIT,
                amount=amount,
                balance_after=new_balance,
                reason=reason,
                description=description,
                payment_ref=payment_ref,
                expires_at=expires_at,
                created_at=datetime.now(timezone.utc),
            )
            await self._repo.append_entry(conn, entry)

        log.info(
            "tokens_credited",
            tenant_id=tenant_id,
            amount=amount,
            reason=reason.value,
            balance=new_balance,
        )
        await self._invalidate(tenant_id)
        return CreditResult(new_balance=new_balance, transaction_id=entry.id)

    async def refund(
        self,
        tenant_id: str,
        amount: int,
        description: str,
        *,
        user_id: str | None = None,
    ) -> CreditResult:
        """Give back tokens charged for an operation that failed."""
        return await self.credit(
            tenant_id,
            amount,
            TokenReason.REFUND,
            user_id=user_id,
            description=description,
        )

    # ── Queries ──────────────────────────────────────────────────

    async def get_balance(self, tenant_id: str) -> int:
        """Current balance; served from cache for up to ``balance_ttl`` seconds."""
        key = balance_cache_key(tenant_id)
        if self._cache is not None:
            cached = await self._cache.get(key)
            if isinstance(cached, int):
                return cached

        balance = await self._repo.read_balance(tenant_id)
        if balance is None:
            return 0
        if self._cache is not None:
            await self._cache.set(key, balance, self._balance_ttl)
        return balance

    async def get_monthly_usage(self, tenant_id: str) -> int:
        """Tokens debited since the start of the current month."""
        return await self._repo.sum_debits_since(tenant_id, month_start())

    async def list_transactions(
        self, tenant_id: str, page: int = 1, page_size: int = 20
    ) -> TransactionPage:
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        entries = await self._repo.list_entries(
            tenant_id, limit=page_size, offset=(page - 1) * page_size
        )
        total = await self._repo.count_entries(tenant_id)
        return TransactionPage(entries=entries, page=page, page_size=page_size, total=total)

    async def get_account(self, tenant_id: str) -> TenantAccount | None:
        return await self._repo.get_account(tenant_id)

    async def reconcile(self, tenant_id: str) -> bool:
        """True when the stored balance equals credits minus debits."""
        balance = await self._repo.read_balance(tenant_id)
        if balance is None:
            raise TenantNotFoundError(f"tenant {tenant_id} not found", {"tenant_id": tenant_id})
        totals = await self._repo.sum_by_type(tenant_id)
        expected = totals[TransactionType.CREDIT] - totals[TransactionType.DEBIT]
        if balance != expected:
            log.error(
                "ledger_out_of_balance",
                tenant_id=tenant_id,
                balance=balance,
                expected=expected,
            )
        return balance == expected

    # ── Onboarding & settings ────────────────────────────────────

    async def create_account(
        self,
        tenant_id: str,
        name: str,
        plan: TenantPlan = TenantPlan.FREE,
        *,
        monthly_budget: int | None = None,
        allocate: bool = True,
    ) -> TenantAccount:
        """Open an account at zero and credit the plan allocation.

        The opening tokens go through ``credit`` so the first ledger entry
        already explains the balance.
        """
        account = TenantAccount(
            tenant_id=tenant_id,
            name=name,
            plan=plan,
            monthly_token_budget=monthly_budget,
        )
        async with self._repo.transaction() as conn:
            if await self._repo.get_account(tenant_id, conn) is not None:
                raise DuplicateTenantError(
                    f"tenant {tenant_id} already exists", {"tenant_id": tenant_id}
                )
            await self._repo.insert_account(conn, account)
        log.info("tenant_account_created", tenant_id=tenant_id, plan=plan.value)

        if allocate:
            result = await self.allocate_plan_tokens(tenant_id, plan=plan)
            if result is not None:
                account.token_balance = result.new_balance
        return account

    async def allocate_plan_tokens(
        self, tenant_id: str, plan: TenantPlan | None = None
    ) -> CreditResult | None:
        """Credit the plan's monthly allocation; ``None`` if it is zero."""
        if plan is None:
            account = await self._repo.get_account(tenant_id)
            if account is None:
                raise TenantNotFoundError(f"tenant {tenant_id} not found", {"tenant_id": tenant_id})
            plan = account.plan

        limits = get_plan_limits(plan)
        tokens = limits["monthly_tokens"]
        if tokens <= 0:
            return None
        return await self.credit(
            tenant_id,
            tokens,
            TokenReason.PLAN_ALLOCATION,
            description=f"{limits['label']} plan allocation: {tokens} tokens",
        )

    async def set_monthly_budget(self, tenant_id: str, budget: int | None) -> None:
        """Set or clear (``None``) the advisory monthly cap."""
        if budget is not None and budget < 0:
            msg = f"monthly budget cannot be negative: {budget}"
            raise InvalidAmountError(msg, {"budget": budget})
        if not await self._repo.set_budget(tenant_id, budget):
            raise TenantNotFoundError(f"tenant {tenant_id} not found", {"tenant_id": tenant_id})
        log.info("monthly_budget_updated", tenant_id=tenant_id, budget=budget)
        await self._invalidate(tenant_id)

    async def _invalidate(self, tenant_id: str) -> None:
        # SharedCache.delete never raises, so this cannot fail the mutation.
        if self._cache is not None:
            await self._cache.delete(balance_cache_key(tenant_id))
