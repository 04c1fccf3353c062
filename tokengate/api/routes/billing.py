"""Billing endpoints — tenant-scoped balance, history, and pre-flight checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from tokengate.api.deps import get_budget_guard, get_ledger, require_tenant
from tokengate.api.middleware import enforce_rate_limit
from tokengate.api.models.schemas import (
    BalanceOut,
    PreflightIn,
    PreflightOut,
    TransactionPageOut,
    UsageOut,
)
from tokengate.ledger import (
    BudgetGuard,
    TokenLedger,
    check_budget,
    estimate_tokens,
    get_plan_limits,
)

router = APIRouter(
    prefix="/billing",
    tags=["billing"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("/balance", response_model=BalanceOut)
async def get_balance(
    tenant_id: str = Depends(require_tenant),
    ledger: TokenLedger = Depends(get_ledger),
) -> BalanceOut:
    """Current balance, this month's usage, and plan allocation."""
    account = await ledger.get_account(tenant_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found",
        )

    balance = await ledger.get_balance(tenant_id)
    used = await ledger.get_monthly_usage(tenant_id)
    plan = get_plan_limits(account.plan)

    return BalanceOut(
        tenant_id=tenant_id,
        token_balance=balance,
        monthly_tokens_used=used,
        monthly_allocation=plan["monthly_tokens"],
        monthly_token_budget=account.monthly_token_budget,
        plan=account.plan.value,
        topup_enabled=plan["topup_enabled"],
    )


@router.get("/transactions", response_model=TransactionPageOut)
async def list_transactions(
    tenant_id: str = Depends(require_tenant),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=5, le=100),
    ledger: TokenLedger = Depends(get_ledger),
) -> TransactionPageOut:
    """Ledger history, newest first."""
    result = await ledger.list_transactions(tenant_id, page=page, page_size=page_size)
    return TransactionPageOut.from_page(result)


@router.get("/usage", response_model=UsageOut)
async def get_usage(
    tenant_id: str = Depends(require_tenant),
    ledger: TokenLedger = Depends(get_ledger),
) -> UsageOut:
    account = await ledger.get_account(tenant_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found",
        )

    used = await ledger.get_monthly_usage(tenant_id)
    decision = check_budget(used, 0, account.monthly_token_budget)
    return UsageOut(
        tenant_id=tenant_id,
        plan=account.plan.value,
        monthly_tokens_used=used,
        monthly_token_budget=decision.budget,
        budget_remaining=decision.remaining,
    )


@router.post("/preflight", response_model=PreflightOut)
async def preflight(
    body: PreflightIn,
    tenant_id: str = Depends(require_tenant),
    guard: BudgetGuard = Depends(get_budget_guard),
) -> PreflightOut:
    """Check balance and budget for an amount or action without charging anything."""
    if body.action is not None:
        amount = estimate_tokens(body.action, body.quantity)
    else:
        amount = body.amount
    result = await guard.preflight(tenant_id, amount)
    return PreflightOut(
        allowed=result.allowed,
        required=result.required,
        balance=result.balance,
        code=result.code.value if result.code else None,
        message=result.message,
    )
