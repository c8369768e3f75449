# billing/service.py
"""
Billing service for Stripe session management.

Handles:
- Checkout session creation (subscription mode)
- Customer Portal session creation

Both calls take an explicit PaymentsClient; the webhook side lives in
billing.reconciler and billing.webhooks.
"""

from __future__ import annotations

import logging
from typing import Optional

from billing.stripe_client import PaymentsClient

_logger = logging.getLogger(__name__)

CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class BillingError(Exception):
    """Base billing error."""
    pass


class BillingDisabledError(BillingError):
    """Billing is not configured."""
    pass


class MissingFieldsError(BillingError):
    """Required request fields are missing."""
    pass


class CheckoutError(BillingError):
    """Checkout session creation failed."""
    pass


class PortalError(BillingError):
    """Customer Portal session creation failed."""
    pass


def build_redirect_urls(frontend_url: str) -> tuple[str, str]:
    """
    Build success and cancel URLs for Checkout.

    Stripe substitutes the session id placeholder on redirect. Cancelled
    payments land back on the pricing page.
    """
    base_url = frontend_url.rstrip("/")
    success_url = f"{base_url}/dashboard?session_id={CHECKOUT_SESSION_PLACEHOLDER}"
    cancel_url = f"{base_url}/pricing"
    return success_url, cancel_url


def create_checkout_session(
    payments: Optional[PaymentsClient],
    frontend_url: Optional[str],
    plan_id: Optional[str],
    plan_name: Optional[str],
    price_id: Optional[str],
    user_id: Optional[str],
    user_email: Optional[str] = None,
) -> str:
    """
    Create a Stripe Checkout session for a subscription.

    Args:
        payments: Stripe client (None when billing is not configured)
        frontend_url: Base URL of the frontend for redirects
        plan_id: Catalog plan id (stored in metadata)
        plan_name: Plan display name (stored in metadata)
        price_id: Stripe price to subscribe to
        user_id: Internal user ID (stored in metadata)
        user_email: Pre-fills the Checkout email field if given

    Returns:
        Hosted Checkout URL

    Raises:
        BillingDisabledError: If Stripe key or frontend URL is missing
        MissingFieldsError: If any required field is missing
        CheckoutError: If session creation fails
    """
    if payments is None or not frontend_url:
        raise BillingDisabledError("Missing environment variables")

    if not (plan_id and plan_name and price_id and user_id):
        raise MissingFieldsError("Missing required fields")

    success_url, cancel_url = build_redirect_urls(frontend_url)

    session_params = {
        "mode": "subscription",
        "payment_method_types": ["card"],
        "line_items": [
            {
                "price": price_id,
                "quantity": 1,
            }
        ],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": {
            "planId": plan_id,
            "planName": plan_name,
            "priceId": price_id,
            "userId": user_id,
        },
        # Subscription events only carry the subscription's own metadata
        "subscription_data": {
            "metadata": {
                "userId": user_id,
                "planId": plan_id,
                "priceId": price_id,
            }
        },
        "billing_address_collection": "required",
        "locale": "auto",
    }

    if user_email:
        session_params["customer_email"] = user_email

    try:
        session = payments.create_checkout_session(**session_params)
    except Exception as e:
        _logger.error(f"Checkout session creation failed: {e}")
        raise CheckoutError(str(e) or "Unknown error") from e

    _logger.info(
        f"Created checkout session for user {user_id}",
        extra={"session_id": session.id, "plan_id": plan_id},
    )
    return session.url


def create_customer_portal_session(
    payments: Optional[PaymentsClient],
    customer_id: Optional[str],
    return_url: Optional[str],
) -> str:
    """
    Create a Stripe Customer Portal session.

    Args:
        payments: Stripe client (None when billing is not configured)
        customer_id: Stripe customer ID
        return_url: URL to return to after the portal

    Returns:
        Portal URL

    Raises:
        BillingDisabledError: If Stripe key is missing
        MissingFieldsError: If customer_id or return_url is missing
        PortalError: If session creation fails
    """
    if payments is None:
        raise BillingDisabledError("Missing environment variables")

    if not (customer_id and return_url):
        raise MissingFieldsError("Missing required fields")

    try:
        session = payments.create_portal_session(
            customer=customer_id,
            return_url=return_url,
        )
    except Exception as e:
        _logger.error(f"Failed to create portal session: {e}")
        raise PortalError(str(e) or "Unknown error") from e

    return session.url
