"""FastAPI dependency injection — shared instances for routes."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status

from tokengate.ledger import BudgetGuard, TokenLedger
from tokengate.ratelimit import RateLimiter
from tokengate.services import GovernanceServices

# ── Services ──────────────────────────────────────────────────────


def get_services(request: Request) -> GovernanceServices:
    """The container built by the app lifespan."""
    return request.app.state.services  # type: ignore[no-any-return]


def get_ledger(services: GovernanceServices = Depends(get_services)) -> TokenLedger:
    return services.ledger


def get_budget_guard(services: GovernanceServices = Depends(get_services)) -> BudgetGuard:
    return services.budget_guard


def get_rate_limiter(services: GovernanceServices = Depends(get_services)) -> RateLimiter:
    return services.rate_limiter


# ── Tenant identity ───────────────────────────────────────────────


async def require_tenant(x_tenant_id: str | None = Header(default=None)) -> str:
    """Return the tenant id stamped on the request by the upstream auth layer."""
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return x_tenant_id
