"""System-wide shared types — the single source of truth for all data structures."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal


# ── Enums ────────────────────────────────────────────────────────

class TenantPlan(str, Enum):
    FREE = "FREE"
    STARTER = "STARTER"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"


class TransactionType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class TokenReason(str, Enum):
    PLAN_ALLOCATION = "PLAN_ALLOCATION"
    TOPUP_PURCHASE = "TOPUP_PURCHASE"
    ADMIN_GRANT = "ADMIN_GRANT"
    GENERATE_ADS = "GENERATE_ADS"
    GENERATE_VIDEO = "GENERATE_VIDEO"
    RENDER = "RENDER"
    REFUND = "REFUND"
    EXPIRY = "EXPIRY"
    ADJUSTMENT = "ADJUSTMENT"


class PreflightCode(str, Enum):
    INSUFFICIENT_TOKENS = "INSUFFICIENT_TOKENS"
    TOKEN_BUDGET_LIMIT = "TOKEN_BUDGET_LIMIT"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"


# ── Accounts & Ledger ────────────────────────────────────────────

@dataclass
class TenantAccount:
    """Billing state of one tenant."""

    tenant_id: str
    name: str
    plan: TenantPlan = TenantPlan.FREE
    token_balance: int = 0
    monthly_token_budget: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.token_balance < 0:
            msg = f"token balance cannot be negative: {self.token_balance}"
            raise ValueError(msg)


@dataclass(frozen=True)
class LedgerEntry:
    """One immutable balance mutation."""

    id: str
    tenant_id: str
    type: TransactionType
    amount: int
    balance_after: int
    reason: TokenReason
    created_at: datetime
    user_id: str | None = None
    description: str | None = None
    usage_log_id: str | None = None
    payment_ref: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class DebitSuccess:
    new_balance: int
    transaction_id: str
    success: Literal[True] = True


@dataclass(frozen=True)
class DebitFailure:
    """Expected rejection — the balance was not touched."""

    balance: int
    required: int
    error: Literal["INSUFFICIENT_TOKENS"] = "INSUFFICIENT_TOKENS"
    success: Literal[False] = False


DebitResult = DebitSuccess | DebitFailure


@dataclass(frozen=True)
class CreditResult:
    new_balance: int
    transaction_id: str


@dataclass
class TransactionPage:
    """One page of ledger history, newest first."""

    entries: list[LedgerEntry]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


# ── Budget ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class BudgetDecision:
    allowed: bool
    used: int
    budget: int | None

    @property
    def remaining(self) -> int | None:
        if self.budget is None:
            return None
        return max(0, self.budget - self.used)


@dataclass(frozen=True)
class PreflightResult:
    """Outcome of a no-charge check before enqueueing billable work."""

    allowed: bool
    required: int
    balance: int | None = None
    code: PreflightCode | None = None
    message: str = ""


# ── Rate limiting ────────────────────────────────────────────────

@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after_ms: int = 0
