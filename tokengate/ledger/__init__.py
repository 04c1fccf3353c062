"""Token ledger — balances, monthly budgets, and spend alerts."""

from tokengate.ledger.alerts import SpendAlertMonitor
from tokengate.ledger.budget import BudgetGuard, check_budget, month_start
from tokengate.ledger.ledger import TokenLedger
from tokengate.ledger.plans import (
    PLAN_LIMITS,
    TOKEN_COSTS,
    estimate_tokens,
    format_tokens,
    get_plan_limits,
)
from tokengate.ledger.store import LedgerRepository

__all__ = [
    "BudgetGuard",
    "LedgerRepository",
    "PLAN_LIMITS",
    "SpendAlertMonitor",
    "TOKEN_COSTS",
    "TokenLedger",
    "check_budget",
    "estimate_tokens",
    "format_tokens",
    "get_plan_limits",
    "month_start",
]
