# billing/tests/test_plans.py
"""Tests for the plan catalog and entitlement calculation."""

from __future__ import annotations

import pytest

from billing.plans import (
    FREE_PLAN_ID,
    PLANS,
    UNLIMITED,
    FeatureLimit,
    PlanDefinition,
    default_plan,
    find_plan,
    free_plan_limits,
    get_feature_limits,
    get_plan_by_id,
    resolve_or_default,
)


class TestCatalog:
    """Tests for catalog contents."""

    def test_first_plan_is_free(self):
        """The fallback plan is the first declared plan."""
        assert PLANS[0].id == FREE_PLAN_ID
        assert default_plan().name == "Free"

    def test_plan_ids_unique(self):
        ids = [plan.id for plan in PLANS]
        assert len(ids) == len(set(ids))

    def test_feature_keys_unique_per_plan(self):
        for plan in PLANS:
            keys = [item.feature for item in plan.features]
            assert len(keys) == len(set(keys)), plan.id

    def test_limits_are_counts_or_unlimited(self):
        for plan in PLANS:
            for item in plan.features:
                assert item.limit == UNLIMITED or (
                    isinstance(item.limit, int) and item.limit >= 0
                )

    def test_plans_are_immutable(self):
        plan = get_plan_by_id("pro")
        with pytest.raises(AttributeError):
            plan.id = "free"


class TestGetPlanById:
    """Tests for plan lookup and the fail-open fallback."""

    @pytest.mark.parametrize("plan_id", ["free", "premium", "pro"])
    def test_known_ids(self, plan_id):
        assert get_plan_by_id(plan_id).id == plan_id

    @pytest.mark.parametrize("plan_id", ["enterprise", "PRO", "", None])
    def test_unknown_ids_fall_back_to_free(self, plan_id):
        """Unknown plan ids resolve to the free plan without raising."""
        assert get_plan_by_id(plan_id) is default_plan()

    def test_find_plan_is_strict(self):
        assert find_plan("enterprise") is None
        assert find_plan("premium").name == "Premium"

    def test_resolve_or_default_matches_lookup(self):
        assert resolve_or_default("bogus") is get_plan_by_id("bogus")


class TestFeatureLimits:
    """Tests for get_feature_limits."""

    def test_pro_is_unlimited(self):
        limits = get_feature_limits(get_plan_by_id("pro"))
        assert limits["mockInterview"] == UNLIMITED
        assert set(limits.values()) == {UNLIMITED}

    def test_keys_match_declared_features(self):
        for plan in PLANS:
            limits = get_feature_limits(plan)
            assert list(limits) == [item.feature for item in plan.features]

    def test_premium_limits(self):
        limits = get_feature_limits(get_plan_by_id("premium"))
        assert limits == {
            "mockInterview": 20,
            "codingChallenge": 100,
            "resumeReview": 5,
            "aiFeedback": 50,
        }

    def test_free_plan_limits(self):
        assert free_plan_limits() == get_feature_limits(get_plan_by_id("free"))
        assert free_plan_limits()["mockInterview"] == 2

    def test_last_duplicate_wins(self):
        plan = PlanDefinition(
            id="odd",
            name="Odd",
            features=(FeatureLimit("mockInterview", 1), FeatureLimit("mockInterview", 3)),
        )
        assert get_feature_limits(plan) == {"mockInterview": 3}

    def test_returns_fresh_mapping(self):
        """Mutating the result does not touch the catalog."""
        limits = get_feature_limits(get_plan_by_id("free"))
        limits["mockInterview"] = 999
        assert get_feature_limits(get_plan_by_id("free"))["mockInterview"] == 2
