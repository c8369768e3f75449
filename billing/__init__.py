# billing/__init__.py
"""
Billing module for Stripe subscriptions.

Provides:
- Stripe Checkout and Customer Portal session creation
- Webhook verification and subscription event reconciliation
- Plan catalog and feature limits
"""

from billing.plans import get_feature_limits, get_plan_by_id, resolve_or_default
from billing.prices import resolve_plan_id
from billing.reconciler import EntitlementReconciler, ReconcileResult
from billing.service import create_checkout_session, create_customer_portal_session
from billing.webhooks import process_webhook_event, verify_webhook_signature

__all__ = [
    "get_feature_limits",
    "get_plan_by_id",
    "resolve_or_default",
    "resolve_plan_id",
    "EntitlementReconciler",
    "ReconcileResult",
    "create_checkout_session",
    "create_customer_portal_session",
    "process_webhook_event",
    "verify_webhook_signature",
]
