# billing/prices.py
"""
Stripe price configuration and price-to-plan resolution.

Price IDs should be set via environment variables for flexibility
between test and production environments.

The price id carried by a webhook payload has moved around across Stripe
API versions and integration paths, so extraction is a declared, ordered
list of named strategies. The first one that yields a value wins.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

from billing.plans import FREE_PLAN_ID, PLAN_IDS

_logger = logging.getLogger(__name__)

# Default test price IDs (create in Stripe Dashboard)
DEFAULT_PREMIUM_PRICE_ID = "price_test_premium_monthly"
DEFAULT_PRO_PRICE_ID = "price_test_pro_monthly"


def get_premium_price_id() -> str:
    """Get the premium monthly price ID from environment."""
    return os.environ.get("STRIPE_PREMIUM_PRICE_ID", DEFAULT_PREMIUM_PRICE_ID)


def get_pro_price_id() -> str:
    """Get the pro monthly price ID from environment."""
    return os.environ.get("STRIPE_PRO_PRICE_ID", DEFAULT_PRO_PRICE_ID)


def get_price_mapping() -> Dict[str, str]:
    """Map Stripe price IDs to catalog plan ids."""
    return {
        get_premium_price_id(): "premium",
        get_pro_price_id(): "pro",
    }


def plan_id_from_price_id(price_id: Optional[str]) -> Optional[str]:
    """
    Determine plan id from a Stripe price ID.

    Returns:
        Plan id or None if not a known price
    """
    if not price_id:
        return None
    return get_price_mapping().get(price_id)


def resolve_plan_id(
    candidate_price_id: Optional[str],
    metadata_plan_id: Optional[str] = None,
) -> str:
    """
    Resolve the plan id for an event.

    Resolution order (first match wins):
    1. Known price ID
    2. Plan id carried in the event metadata, when it names a catalog plan
    3. "free"
    """
    mapped = plan_id_from_price_id(candidate_price_id)
    if mapped:
        return mapped

    if metadata_plan_id in PLAN_IDS:
        return metadata_plan_id

    if candidate_price_id or metadata_plan_id:
        _logger.warning(
            "Could not resolve plan; defaulting to free",
            extra={"price_id": candidate_price_id, "metadata_plan_id": metadata_plan_id},
        )
    return FREE_PLAN_ID


# =============================================================================
# Price ID extraction
# =============================================================================


def _first(items: Any) -> Optional[dict]:
    """First element of a list, or of a Stripe list object's ``data``."""
    if isinstance(items, dict):
        items = items.get("data")
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def _price_of(item: Optional[dict]) -> Optional[str]:
    """Price id of a line item. ``price`` may be expanded or a bare id."""
    if not item:
        return None
    price = item.get("price")
    if isinstance(price, dict):
        return price.get("id")
    if isinstance(price, str):
        return price
    return None


def _from_metadata(obj: dict) -> Optional[str]:
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        return None
    return metadata.get("priceId")


def _from_display_items(obj: dict) -> Optional[str]:
    item = _first(obj.get("display_items"))
    if not item:
        return None
    # Legacy checkout sessions carried either a price or a plan
    plan = item.get("plan")
    return _price_of(item) or (plan.get("id") if isinstance(plan, dict) else None)


def _from_line_items(obj: dict) -> Optional[str]:
    return _price_of(_first(obj.get("line_items")))


def _from_subscription_items(obj: dict) -> Optional[str]:
    subscription = obj.get("subscription")
    if not isinstance(subscription, dict):
        return None
    return _price_of(_first(subscription.get("items")))


def _from_items(obj: dict) -> Optional[str]:
    return _price_of(_first(obj.get("items")))


PriceStrategy = Tuple[str, Callable[[dict], Optional[str]]]

CHECKOUT_PRICE_STRATEGIES: List[PriceStrategy] = [
    ("metadata", _from_metadata),
    ("display_items", _from_display_items),
    ("line_items", _from_line_items),
    ("subscription_items", _from_subscription_items),
]

SUBSCRIPTION_PRICE_STRATEGIES: List[PriceStrategy] = [
    ("items", _from_items),
    ("metadata", _from_metadata),
]


def extract_price_id(
    obj: dict,
    strategies: List[PriceStrategy] = CHECKOUT_PRICE_STRATEGIES,
) -> Optional[str]:
    """
    Probe a Stripe object for its price id.

    Returns:
        The first non-empty value produced by a strategy, or None
    """
    for name, strategy in strategies:
        value = strategy(obj)
        if value:
            _logger.debug(f"Price id found via {name}")
            return value
    return None
