"""Tests for core type definitions."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tokengate.core.exceptions import InvalidAmountError, TokenGateError
from tokengate.core.types import (
    BudgetDecision,
    DebitFailure,
    DebitSuccess,
    LedgerEntry,
    TenantAccount,
    TenantPlan,
    TokenReason,
    TransactionPage,
    TransactionType,
)


class TestTenantAccount:
    def test_defaults(self) -> None:
        account = TenantAccount(tenant_id="t1", name="Acme")
        assert account.plan == TenantPlan.FREE
        assert account.token_balance == 0
        assert account.monthly_token_budget is None
        assert account.created_at.tzinfo is not None

    def test_negative_balance_rejected(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            TenantAccount(tenant_id="t1", name="Acme", token_balance=-1)


class TestReasonEnum:
    def test_closed_set(self) -> None:
        assert {r.value for r in TokenReason} == {
            "PLAN_ALLOCATION",
            "TOPUP_PURCHASE",
            "ADMIN_GRANT",
            "GENERATE_ADS",
            "GENERATE_VIDEO",
            "RENDER",
            "REFUND",
            "EXPIRY",
            "ADJUSTMENT",
        }

    def test_string_valued(self) -> None:
        assert TokenReason("RENDER") is TokenReason.RENDER
        assert TransactionType.DEBIT == "DEBIT"


class TestDebitResults:
    def test_success_flag(self) -> None:
        ok = DebitSuccess(new_balance=40, transaction_id="tx-1")
        assert ok.success is True

    def test_failure_carries_error_code(self) -> None:
        fail = DebitFailure(balance=40, required=60)
        assert fail.success is False
        assert fail.error == "INSUFFICIENT_TOKENS"
        assert (fail.balance, fail.required) == (40, 60)


class TestLedgerEntry:
    def test_frozen(self) -> None:
        entry = LedgerEntry(
            id="e1",
            tenant_id="t1",
            type=TransactionType.CREDIT,
            amount=10,
            balance_after=10,
            reason=TokenReason.ADMIN_GRANT,
            created_at=datetime.now(timezone.utc),
        )
        with pytest.raises(AttributeError):
            entry.amount = 20  # type: ignore[misc]


class TestTransactionPage:
    @pytest.mark.parametrize(
        ("total", "page_size", "expected"),
        [(0, 20, 0), (1, 20, 1), (20, 20, 1), (21, 20, 2), (45, 10, 5)],
    )
    def test_total_pages(self, total: int, page_size: int, expected: int) -> None:
        page = TransactionPage(entries=[], page=1, page_size=page_size, total=total)
        assert page.total_pages == expected


class TestBudgetDecision:
    def test_remaining(self) -> None:
        assert BudgetDecision(allowed=True, used=60, budget=150).remaining == 90

    def test_remaining_floors_at_zero(self) -> None:
        assert BudgetDecision(allowed=False, used=190, budget=150).remaining == 0

    def test_no_budget(self) -> None:
        assert BudgetDecision(allowed=True, used=5, budget=None).remaining is None


class TestExceptions:
    def test_context_attached(self) -> None:
        err = InvalidAmountError("bad", {"amount": 0})
        assert isinstance(err, TokenGateError)
        assert isinstance(err, ValueError)
        assert err.context == {"amount": 0}
