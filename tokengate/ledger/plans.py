"""Plan tiers, token allocations, and per-operation token costs."""

from __future__ import annotations

from typing import Any

from tokengate.core.types import TenantPlan

PLAN_LIMITS: dict[TenantPlan, dict[str, Any]] = {
    TenantPlan.FREE: {
        "label": "Free",
        "monthly_tokens": 40,
        "topup_enabled": False,
        "max_users": 1,
    },
    TenantPlan.STARTER: {
        "label": "Starter",
        "monthly_tokens": 500,
        "topup_enabled": True,
        "max_users": 5,
    },
    TenantPlan.PRO: {
        "label": "Pro",
        "monthly_tokens": 2_500,
        "topup_enabled": True,
        "max_users": 999_999,
    },
    TenantPlan.ENTERPRISE: {
        "label": "Enterprise",
        "monthly_tokens": 1_000,
        "topup_enabled": True,
        "max_users": 999_999,
    },
}


def get_plan_limits(plan: TenantPlan | str) -> dict[str, Any]:
    """Limits for ``plan``; unknown plan names get the Free tier."""
    try:
        return PLAN_LIMITS[TenantPlan(plan)]
    except ValueError:
        return PLAN_LIMITS[TenantPlan.FREE]


# ── Token costs ──────────────────────────────────────────────────
# Ad generation is bundled into render/video costs.

TOKEN_COSTS: dict[str, int] = {
    "GENERATE_ADS": 0,
    "REGENERATE_AD": 0,
    "RENDER_VIDEO": 1,
    "GENERATE_VIDEO": 5,
}


def calculate_render_tokens(output_count: int) -> int:
    """Each rendered output video costs one token."""
    return output_count * TOKEN_COSTS["RENDER_VIDEO"]


def calculate_video_tokens(video_count: int, per_video: int | None = None) -> int:
    """AI video cost; ``per_video`` overrides the default model price."""
    return video_count * (per_video if per_video is not None else TOKEN_COSTS["GENERATE_VIDEO"])


def estimate_tokens(action: str, quantity: int = 1) -> int:
    """Token cost of ``quantity`` units of ``action`` (a ``TOKEN_COSTS`` key)."""
    if quantity < 1:
        raise ValueError(f"quantity must be positive, got {quantity}")
    if action == "RENDER_VIDEO":
        return calculate_render_tokens(quantity)
    if action == "GENERATE_VIDEO":
        return calculate_video_tokens(quantity)
    return TOKEN_COSTS[action] * quantity


def format_tokens(count: int) -> str:
    if count == 1:
        return "1 token"
    return f"{count:,} tokens"
