"""Monthly budget guard.

The cap is advisory: usage is read before the hard balance decrement, so two
concurrent deducts can both pass and jointly overshoot the budget. Only the
balance itself is strictly protected.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from tokengate.core.logging import get_logger
from tokengate.core.types import BudgetDecision, PreflightCode, PreflightResult
from tokengate.ledger.plans import format_tokens
from tokengate.ledger.store import LedgerRepository

log = get_logger(__name__)


def month_start(now: datetime | None = None) -> datetime:
    """First instant of the current calendar month (UTC)."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(
        day=1, hour=0, minute=0, second=0, microsecond=0
    )


def check_budget(used: int, amount: int, budget: int | None) -> BudgetDecision:
    """Decide whether spending ``amount`` more stays within ``budget``.

    A missing or non-positive budget means no cap.
    """
    if not budget or budget <= 0:
        return BudgetDecision(allowed=True, used=used, budget=None)
    return BudgetDecision(allowed=used + amount <= budget, used=used, budget=budget)


class BudgetGuard:
    """Pre-flight balance and budget check that never charges anything.

    Lets a caller reject an expensive job before enqueueing it. Fails open:
    if the durable store is unreachable the check allows and the real
    deduct decides later.
    """

    def __init__(self, repo: LedgerRepository) -> None:
        self._repo = repo

    async def preflight(self, tenant_id: str, amount: int) -> PreflightResult:
        try:
            account = await self._repo.get_account(tenant_id)
            if account is None:
                return PreflightResult(
                    allowed=False,
                    required=amount,
                    code=PreflightCode.TENANT_NOT_FOUND,
                    message="Tenant not found",
                )

            if account.token_balance < amount:
                return PreflightResult(
                    allowed=False,
                    required=amount,
                    balance=account.token_balance,
                    code=PreflightCode.INSUFFICIENT_TOKENS,
                    message=(
                        f"You need {format_tokens(amount)} but have "
                        f"{format_tokens(account.token_balance)}."
                    ),
                )

            budget = account.monthly_token_budget
            if budget:
                used = await self._repo.sum_debits_since(tenant_id, month_start())
                decision = check_budget(used, amount, budget)
                if not decision.allowed:
                    return PreflightResult(
                        allowed=False,
                        required=amount,
                        balance=account.token_balance,
                        code=PreflightCode.TOKEN_BUDGET_LIMIT,
                        message=f"Monthly token budget of {format_tokens(budget)} reached.",
                    )

            return PreflightResult(allowed=True, required=amount, balance=account.token_balance)
        except SQLAlchemyError as exc:
            log.warning("preflight_failed_open", tenant_id=tenant_id, error=str(exc))
            return PreflightResult(allowed=True, required=amount)
