"""Per-route rate limit table."""

from __future__ import annotations

from collections.abc import Mapping

from tokengate.core.types import RateLimitRule

RATE_LIMITS: dict[str, RateLimitRule] = {
    "/api/generate-ads": RateLimitRule(max_requests=5, window_ms=60_000),
    "/api/generate-video": RateLimitRule(max_requests=3, window_ms=60_000),
    "/api/render": RateLimitRule(max_requests=50, window_ms=60_000),
    "/api/upload": RateLimitRule(max_requests=20, window_ms=60_000),
    "/api/upload-music": RateLimitRule(max_requests=20, window_ms=60_000),
    "/api/log": RateLimitRule(max_requests=60, window_ms=60_000),
    "/api/logs": RateLimitRule(max_requests=30, window_ms=60_000),
    "/api/tickets": RateLimitRule(max_requests=30, window_ms=60_000),
    "/api/admin/tickets": RateLimitRule(max_requests=30, window_ms=60_000),
    "/api/integrations/google-drive/export": RateLimitRule(max_requests=5, window_ms=60_000),
    "/api/billing": RateLimitRule(max_requests=60, window_ms=60_000),
}


def match_rule(
    path: str, rules: Mapping[str, RateLimitRule] = RATE_LIMITS
) -> tuple[str, RateLimitRule] | None:
    """First configured prefix that ``path`` starts with, in table order."""
    for prefix, rule in rules.items():
        if path.startswith(prefix):
            return prefix, rule
    return None


def client_identity(headers: Mapping[str, str]) -> str:
    """Best-effort client address for unauthenticated limiting."""
    forwarded = headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip() if forwarded else ""
    return first or headers.get("x-real-ip") or "127.0.0.1"
