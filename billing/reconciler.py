# billing/reconciler.py
"""
Subscription event to entitlement reconciliation.

Each handler turns one verified Stripe object into a single merge-upsert
of ``users/{userId}``:

- checkout.session.completed: assign the purchased plan, reset usage
- customer.subscription.updated: record status; entitlements follow it
  for active and terminal statuses only
- customer.subscription.deleted: downgrade to free

The user id always comes from the object's metadata. Without it nothing
is written.

Known gap: events are applied in arrival order. A stale redelivery can
overwrite newer state because no event timestamp is compared before
writing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from billing.plans import PlanDefinition, default_plan, get_feature_limits, get_plan_by_id
from billing.prices import (
    CHECKOUT_PRICE_STRATEGIES,
    SUBSCRIPTION_PRICE_STRATEGIES,
    extract_price_id,
    resolve_plan_id,
)
from billing.stripe_client import PaymentsClient
from persistence.entitlements import EntitlementStore

_logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"
CANCELED_STATUS = "canceled"

# Statuses that drop the user back to free limits
TERMINAL_STATUSES = frozenset({CANCELED_STATUS, "unpaid", "incomplete_expired"})

OUTCOME_APPLIED = "applied"
OUTCOME_SKIPPED = "skipped"
OUTCOME_IGNORED = "ignored"


@dataclass
class ReconcileResult:
    """What a handler did with one event."""
    event_type: str
    outcome: str
    user_id: Optional[str] = None
    fields: dict = field(default_factory=dict)
    reason: str = ""

    @property
    def applied(self) -> bool:
        return self.outcome == OUTCOME_APPLIED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _metadata(obj: dict) -> dict:
    metadata = obj.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def _user_id(obj: dict) -> Optional[str]:
    return _metadata(obj).get("userId") or None


def _epoch_to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def subscription_end_date(subscription: Optional[dict]) -> Optional[datetime]:
    """
    End of the subscription's current billing period.

    Newer API versions moved ``current_period_end`` onto subscription items.
    """
    if not subscription:
        return None

    end = _epoch_to_datetime(subscription.get("current_period_end"))
    if end:
        return end

    items = subscription.get("items")
    items = items.get("data") if isinstance(items, dict) else None
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return _epoch_to_datetime(items[0].get("current_period_end"))
    return None


def plan_fields(plan: PlanDefinition) -> dict:
    """Plan id, display name and limits, always written together."""
    return {
        "plan": plan.id,
        "planName": plan.name,
        "featureLimits": get_feature_limits(plan),
    }


def build_checkout_update(
    session: dict,
    subscription: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Fields written when a subscription checkout completes."""
    price_id = extract_price_id(session, CHECKOUT_PRICE_STRATEGIES)
    plan = get_plan_by_id(resolve_plan_id(price_id, _metadata(session).get("planId")))

    subscription_ref = session.get("subscription")
    if isinstance(subscription_ref, dict):
        subscription_id = subscription_ref.get("id")
        subscription = subscription or subscription_ref
    else:
        subscription_id = subscription_ref

    fields = plan_fields(plan)
    fields.update({
        "subscriptionId": subscription_id,
        "subscriptionStatus": ACTIVE_STATUS,
        "usageHistory": [],
        "updatedAt": now or _utcnow(),
    })

    end_date = subscription_end_date(subscription)
    if end_date:
        fields["subscriptionEndDate"] = end_date
    return fields


def build_subscription_update(subscription: dict, now: Optional[datetime] = None) -> dict:
    """
    Fields written when a subscription changes.

    Status is always recorded. Entitlements change only for active
    (resolved plan) and terminal (free plan) statuses; anything else such
    as past_due or trialing leaves them as they were.
    """
    status = subscription.get("status")
    fields = {
        "subscriptionStatus": status,
        "updatedAt": now or _utcnow(),
    }

    end_date = subscription_end_date(subscription)
    if end_date:
        fields["subscriptionEndDate"] = end_date

    if status == ACTIVE_STATUS:
        price_id = extract_price_id(subscription, SUBSCRIPTION_PRICE_STRATEGIES)
        plan = get_plan_by_id(resolve_plan_id(price_id, _metadata(subscription).get("planId")))
        fields.update(plan_fields(plan))
    elif status in TERMINAL_STATUSES:
        fields.update(plan_fields(default_plan()))

    return fields


def build_deletion_update(subscription: dict, now: Optional[datetime] = None) -> dict:
    """Fields written when a subscription is deleted."""
    fields = plan_fields(default_plan())
    fields.update({
        "subscriptionStatus": CANCELED_STATUS,
        "updatedAt": now or _utcnow(),
    })

    end_date = subscription_end_date(subscription)
    if end_date:
        fields["subscriptionEndDate"] = end_date
    return fields


class EntitlementReconciler:
    """
    Applies subscription lifecycle events to user entitlement records.

    Args:
        store: Entitlement store every write goes through
        payments: Stripe client used to look up billing period ends after
            checkout. Optional; without it the end date is only written
            when the session carries an expanded subscription.
    """

    def __init__(self, store: EntitlementStore, payments: Optional[PaymentsClient] = None):
        self.store = store
        self.payments = payments

    def handle_checkout_completed(self, session: dict) -> ReconcileResult:
        """Handle checkout.session.completed."""
        event_type = "checkout.session.completed"
        user_id = _user_id(session)
        if not user_id:
            _logger.warning("Checkout completed without userId in metadata")
            return ReconcileResult(event_type, OUTCOME_SKIPPED, reason="missing userId")

        subscription = None
        subscription_ref = session.get("subscription")
        if isinstance(subscription_ref, str):
            subscription = self._fetch_subscription(subscription_ref)

        fields = build_checkout_update(session, subscription)
        return self._apply(event_type, user_id, fields)

    def handle_subscription_updated(self, subscription: dict) -> ReconcileResult:
        """Handle customer.subscription.updated."""
        event_type = "customer.subscription.updated"
        user_id = _user_id(subscription)
        if not user_id:
            _logger.warning(
                "Subscription updated without userId in metadata",
                extra={"subscription_id": subscription.get("id")},
            )
            return ReconcileResult(event_type, OUTCOME_SKIPPED, reason="missing userId")

        fields = build_subscription_update(subscription)
        return self._apply(event_type, user_id, fields)

    def handle_subscription_deleted(self, subscription: dict) -> ReconcileResult:
        """Handle customer.subscription.deleted."""
        event_type = "customer.subscription.deleted"
        user_id = _user_id(subscription)
        if not user_id:
            _logger.warning(
                "Subscription deleted without userId in metadata",
                extra={"subscription_id": subscription.get("id")},
            )
            return ReconcileResult(event_type, OUTCOME_SKIPPED, reason="missing userId")

        fields = build_deletion_update(subscription)
        return self._apply(event_type, user_id, fields)

    def _fetch_subscription(self, subscription_id: str) -> Optional[dict]:
        """Best-effort subscription lookup. Failures are logged and skipped."""
        if self.payments is None:
            return None
        try:
            return self.payments.retrieve_subscription(subscription_id)
        except Exception as e:
            _logger.warning(
                f"Could not fetch subscription {subscription_id}: {e}",
                extra={"subscription_id": subscription_id},
            )
            return None

    def _apply(self, event_type: str, user_id: str, fields: dict) -> ReconcileResult:
        self.store.merge_user(user_id, fields)
        _logger.info(
            f"Reconciled {event_type} for user {user_id}",
            extra={
                "plan": fields.get("plan"),
                "subscription_status": fields.get("subscriptionStatus"),
            },
        )
        return ReconcileResult(event_type, OUTCOME_APPLIED, user_id=user_id, fields=fields)
