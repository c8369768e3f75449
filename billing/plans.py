# billing/plans.py
"""
Plan catalog and entitlement calculation.

Plans:
- free: default for every user, and the target of every downgrade
- premium: monthly subscription with raised limits
- pro: monthly subscription, everything unlimited

The catalog is a process-wide constant. Lookups never raise: an unknown
plan id resolves to the first declared plan (free).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

UNLIMITED = "unlimited"

Limit = Union[int, str]


@dataclass(frozen=True)
class FeatureLimit:
    """Usage limit for a single feature."""
    feature: str
    limit: Limit  # non-negative count or UNLIMITED


@dataclass(frozen=True)
class PlanDefinition:
    """Subscription plan with its per-feature usage limits."""
    id: str
    name: str
    features: Tuple[FeatureLimit, ...]


FREE_PLAN_ID = "free"

# Declaration order matters: the first plan is the fallback.
PLANS: Tuple[PlanDefinition, ...] = (
    PlanDefinition(
        id=FREE_PLAN_ID,
        name="Free",
        features=(
            FeatureLimit("mockInterview", 2),
            FeatureLimit("codingChallenge", 10),
            FeatureLimit("resumeReview", 1),
            FeatureLimit("aiFeedback", 5),
        ),
    ),
    PlanDefinition(
        id="premium",
        name="Premium",
        features=(
            FeatureLimit("mockInterview", 20),
            FeatureLimit("codingChallenge", 100),
            FeatureLimit("resumeReview", 5),
            FeatureLimit("aiFeedback", 50),
        ),
    ),
    PlanDefinition(
        id="pro",
        name="Pro",
        features=(
            FeatureLimit("mockInterview", UNLIMITED),
            FeatureLimit("codingChallenge", UNLIMITED),
            FeatureLimit("resumeReview", UNLIMITED),
            FeatureLimit("aiFeedback", UNLIMITED),
        ),
    ),
)

PLAN_IDS = frozenset(plan.id for plan in PLANS)


def default_plan() -> PlanDefinition:
    """The plan every unknown id falls back to."""
    return PLANS[0]


def find_plan(plan_id: Optional[str]) -> Optional[PlanDefinition]:
    """Strict lookup. Returns None for unknown ids."""
    for plan in PLANS:
        if plan.id == plan_id:
            return plan
    return None


def resolve_or_default(plan_id: Optional[str]) -> PlanDefinition:
    """
    Fail-open plan lookup.

    Malformed or unknown plan ids never block a write; they resolve to the
    free plan instead, silently downgrading entitlements.
    """
    return find_plan(plan_id) or default_plan()


def get_plan_by_id(plan_id: Optional[str]) -> PlanDefinition:
    """Get plan definition by id, defaulting to the free plan."""
    return resolve_or_default(plan_id)


def get_feature_limits(plan: PlanDefinition) -> Dict[str, Limit]:
    """Flatten a plan's features into a feature -> limit mapping."""
    limits: Dict[str, Limit] = {}
    for item in plan.features:
        limits[item.feature] = item.limit
    return limits


def free_plan_limits() -> Dict[str, Limit]:
    """Feature limits applied on every downgrade."""
    return get_feature_limits(default_plan())
