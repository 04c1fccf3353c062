"""Custom exception hierarchy for TokenGate.

Only programming errors and missing records are raised. Business rejections
(insufficient balance, budget exceeded, rate limited) are returned as typed
results, and infrastructure errors from the durable store propagate as-is.
"""

from __future__ import annotations

from typing import Any


class TokenGateError(Exception):
    """Base exception for all TokenGate errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = context or {}


# ── Ledger ───────────────────────────────────────────────────────

class TenantNotFoundError(TokenGateError):
    """No tenant account exists for the given id."""


class InvalidAmountError(TokenGateError, ValueError):
    """Token amounts must be positive integers."""


class DuplicateTenantError(TokenGateError):
    """A tenant account with this id already exists."""
