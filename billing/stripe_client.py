# billing/stripe_client.py
"""
Stripe SDK access.

Environment variables:
- STRIPE_SECRET_KEY: Stripe API secret key (required for checkout and portal)
- STRIPE_WEBHOOK_SECRET: Webhook signing secret (required for webhooks)

The API key is held by a PaymentsClient instance and passed on every call,
so nothing mutates ``stripe.api_key``. Build one client at startup and share
it.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import stripe

_logger = logging.getLogger(__name__)

# Pin API version for consistent payload shapes
STRIPE_API_VERSION = "2023-10-16"


def get_stripe_key() -> str:
    """Get Stripe secret key from environment."""
    return os.environ.get("STRIPE_SECRET_KEY", "")


def get_webhook_secret() -> str:
    """Get Stripe webhook signing secret from environment."""
    return os.environ.get("STRIPE_WEBHOOK_SECRET", "")


def is_billing_enabled(key: Optional[str] = None) -> bool:
    """Check if billing is enabled (Stripe key configured)."""
    key = get_stripe_key() if key is None else key
    return bool(key and len(key) > 10)


def _to_dict(obj: Any) -> dict:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


class PaymentsClient:
    """Thin wrapper over the Stripe calls this service makes."""

    def __init__(self, api_key: str, api_version: str = STRIPE_API_VERSION):
        self.api_key = api_key
        self.api_version = api_version

    @property
    def livemode(self) -> bool:
        return self.api_key.startswith("sk_live_")

    def create_checkout_session(self, **params: Any) -> Any:
        return stripe.checkout.Session.create(
            api_key=self.api_key,
            stripe_version=self.api_version,
            **params,
        )

    def create_portal_session(self, customer: str, return_url: str) -> Any:
        return stripe.billing_portal.Session.create(
            api_key=self.api_key,
            stripe_version=self.api_version,
            customer=customer,
            return_url=return_url,
        )

    def retrieve_subscription(self, subscription_id: str) -> dict:
        """Fetch a subscription and return it as a plain dict."""
        subscription = stripe.Subscription.retrieve(
            subscription_id,
            api_key=self.api_key,
            stripe_version=self.api_version,
        )
        return _to_dict(subscription)


def init_payments_client(key: Optional[str] = None) -> Optional[PaymentsClient]:
    """
    Build the process-wide Stripe client.

    Returns:
        PaymentsClient, or None when no usable key is configured
    """
    key = get_stripe_key() if key is None else key
    if not is_billing_enabled(key):
        _logger.warning("STRIPE_SECRET_KEY not set. Billing disabled.")
        return None

    client = PaymentsClient(key)
    mode = "live" if client.livemode else "test"
    _logger.info(f"Stripe initialized in {mode} mode")
    return client
