"""Pydantic V2 request/response schemas for the TokenGate API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from tokengate.core.types import LedgerEntry, TransactionPage


# ── Billing ───────────────────────────────────────────────────────

class BalanceOut(BaseModel):
    tenant_id: str
    token_balance: int
    monthly_tokens_used: int
    monthly_allocation: int
    monthly_token_budget: int | None = None
    plan: str
    topup_enabled: bool


class TransactionOut(BaseModel):
    id: str
    type: str
    amount: int
    balance_after: int
    reason: str
    description: str | None = None
    user_id: str | None = None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> TransactionOut:
        return cls(
            id=entry.id,
            type=entry.type.value,
            amount=entry.amount,
            balance_after=entry.balance_after,
            reason=entry.reason.value,
            description=entry.description,
            user_id=entry.user_id,
            created_at=entry.created_at,
        )


class PaginationOut(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class TransactionPageOut(BaseModel):
    transactions: list[TransactionOut] = Field(default_factory=list)
    pagination: PaginationOut

    @classmethod
    def from_page(cls, page: TransactionPage) -> TransactionPageOut:
        return cls(
            transactions=[TransactionOut.from_entry(e) for e in page.entries],
            pagination=PaginationOut(
                page=page.page,
                page_size=page.page_size,
                total=page.total,
                total_pages=page.total_pages,
            ),
        )


class UsageOut(BaseModel):
    tenant_id: str
    plan: str
    monthly_tokens_used: int
    monthly_token_budget: int | None = None
    budget_remaining: int | None = None


class PreflightIn(BaseModel):
    """Request body for a no-charge balance/budget check.

    Give either a raw token ``amount`` or a priced ``action`` with a
    ``quantity``; the action is costed from the token price table.
    """

    amount: int | None = Field(None, gt=0)
    action: Literal["GENERATE_ADS", "REGENERATE_AD", "RENDER_VIDEO", "GENERATE_VIDEO"] | None = None
    quantity: int = Field(1, ge=1)

    @model_validator(mode="after")
    def _amount_or_action(self) -> PreflightIn:
        if (self.amount is None) == (self.action is None):
            raise ValueError("provide exactly one of amount or action")
        return self


class PreflightOut(BaseModel):
    allowed: bool
    required: int
    balance: int | None = None
    code: str | None = None
    message: str = ""


# ── Generic ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    environment: str = "dev"
    redis: bool = False


class ErrorResponse(BaseModel):
    detail: str
