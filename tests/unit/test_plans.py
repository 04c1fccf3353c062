"""Tests for plan tiers and token pricing."""

from __future__ import annotations

import pytest

from tokengate.core.types import TenantPlan
from tokengate.ledger.plans import (
    PLAN_LIMITS,
    calculate_render_tokens,
    calculate_video_tokens,
    estimate_tokens,
    format_tokens,
    get_plan_limits,
)


class TestPlanLimits:
    def test_every_plan_configured(self) -> None:
        assert set(PLAN_LIMITS) == set(TenantPlan)

    def test_monthly_allocations(self) -> None:
        assert get_plan_limits(TenantPlan.FREE)["monthly_tokens"] == 40
        assert get_plan_limits(TenantPlan.STARTER)["monthly_tokens"] == 500
        assert get_plan_limits(TenantPlan.PRO)["monthly_tokens"] == 2_500

    def test_lookup_by_string(self) -> None:
        assert get_plan_limits("PRO")["label"] == "Pro"

    def test_unknown_plan_defaults_free(self) -> None:
        assert get_plan_limits("platinum") is PLAN_LIMITS[TenantPlan.FREE]

    def test_free_has_no_topup(self) -> None:
        assert PLAN_LIMITS[TenantPlan.FREE]["topup_enabled"] is False


class TestTokenPricing:
    def test_render_cost(self) -> None:
        assert calculate_render_tokens(7) == 7

    def test_video_cost_default(self) -> None:
        assert calculate_video_tokens(2) == 10

    def test_video_cost_override(self) -> None:
        assert calculate_video_tokens(3, per_video=8) == 24

    def test_format_tokens(self) -> None:
        assert format_tokens(1) == "1 token"
        assert format_tokens(0) == "0 tokens"
        assert format_tokens(1234) == "1,234 tokens"


class TestEstimateTokens:
    def test_priced_actions(self) -> None:
        assert estimate_tokens("RENDER_VIDEO", 4) == 4
        assert estimate_tokens("GENERATE_VIDEO", 2) == 10
        assert estimate_tokens("GENERATE_VIDEO") == 5

    def test_bundled_actions_are_free(self) -> None:
        assert estimate_tokens("GENERATE_ADS", 3) == 0
        assert estimate_tokens("REGENERATE_AD") == 0

    def test_unknown_action(self) -> None:
        with pytest.raises(KeyError):
            estimate_tokens("TRAIN_MODEL")

    def test_quantity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            estimate_tokens("RENDER_VIDEO", 0)
