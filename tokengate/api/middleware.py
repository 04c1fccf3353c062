"""Rate-limit enforcement for FastAPI routes."""

from __future__ import annotations

import math

from fastapi import Depends, HTTPException, Request, status

from tokengate.api.deps import get_rate_limiter
from tokengate.ratelimit import RateLimiter, client_identity


async def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """Reject with 429 when the caller is over the route's limit.

    The caller is identified by tenant id when present, otherwise by
    client address.
    """
    identity = request.headers.get("x-tenant-id") or client_identity(request.headers)
    result = await limiter.check(identity, request.url.path)
    if result.allowed:
        return

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"error": "Too many requests", "retry_after_ms": result.retry_after_ms},
        headers={"Retry-After": str(max(1, math.ceil(result.retry_after_ms / 1000)))},
    )
