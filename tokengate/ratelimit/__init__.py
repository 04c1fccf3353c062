"""Rate limiting — shared sliding window with a per-process fallback."""

from tokengate.ratelimit.limiter import RateLimiter
from tokengate.ratelimit.local_store import LocalRateLimitStore
from tokengate.ratelimit.rules import RATE_LIMITS, client_identity, match_rule

__all__ = [
    "RateLimiter",
    "LocalRateLimitStore",
    "RATE_LIMITS",
    "client_identity",
    "match_rule",
]
