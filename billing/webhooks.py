# billing/webhooks.py
"""
Stripe webhook handling with signature verification.

Security:
- All webhooks verified using Stripe signing secret
- Never trust unverified payloads
- Log all webhook events for audit trail

Receipt and reconciliation are separate concerns: once an event is
verified it is acknowledged, whatever the reconciler made of it.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Dict, Tuple

import stripe

from billing.reconciler import OUTCOME_IGNORED, EntitlementReconciler, ReconcileResult

_logger = logging.getLogger(__name__)


class WebhookError(Exception):
    """Webhook processing error."""
    pass


class SignatureVerificationError(WebhookError):
    """Webhook signature verification failed."""
    pass


def verify_webhook_signature(payload: bytes, signature: str, webhook_secret: str) -> dict:
    """
    Verify Stripe webhook signature and parse event.

    Args:
        payload: Raw request body bytes, exactly as received
        signature: Stripe-Signature header value
        webhook_secret: Endpoint signing secret

    Returns:
        Parsed event as a plain dict

    Raises:
        SignatureVerificationError: If the secret is missing or the signature is invalid
        WebhookError: If the payload is not valid JSON
    """
    if not webhook_secret:
        raise SignatureVerificationError("Webhook secret not configured")

    if not payload:
        raise WebhookError("Empty payload")

    try:
        body = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            body,
            signature,
            webhook_secret,
            stripe.Webhook.DEFAULT_TOLERANCE,
        )
    except stripe.SignatureVerificationError as e:
        _logger.warning(f"Webhook signature verification failed: {e}")
        raise SignatureVerificationError("Invalid webhook signature") from e
    except UnicodeDecodeError as e:
        raise WebhookError(f"Failed to parse webhook: {e}") from e

    try:
        event = json.loads(body)
    except json.JSONDecodeError as e:
        _logger.error(f"Webhook parsing error: {e}")
        raise WebhookError(f"Failed to parse webhook: {e}") from e

    if not isinstance(event, dict):
        raise WebhookError("Failed to parse webhook: event is not an object")
    return event


def process_webhook_event(event: dict, reconciler: EntitlementReconciler) -> Tuple[bool, str]:
    """
    Process a verified Stripe webhook event.

    Args:
        event: Verified Stripe event object
        reconciler: Applies the event to the entitlement store

    Returns:
        Tuple of (success, message)
    """
    event_type = event.get("type", "unknown")
    event_id = event.get("id", "unknown")

    _logger.info(f"Processing webhook event: {event_type}", extra={"event_id": event_id})

    # Route to appropriate handler
    handlers: Dict[str, Callable[[dict, EntitlementReconciler], ReconcileResult]] = {
        "checkout.session.completed": _handle_checkout_session,
        "customer.subscription.updated": _handle_subscription_updated,
        "customer.subscription.deleted": _handle_subscription_deleted,
    }

    handler = handlers.get(event_type)

    if handler is None:
        # Unhandled event type - acknowledge but don't process
        _logger.debug(f"Unhandled webhook event type: {event_type}")
        return True, f"Event type {event_type} not handled"

    try:
        result = handler(event, reconciler)
    except Exception as e:
        _logger.error(f"Webhook handler error for {event_type}: {e}", extra={"event_id": event_id})
        return False, f"Handler error: {e}"

    if result.applied:
        return True, f"Successfully processed {event_type}"
    return True, f"Event {event_type} {result.outcome}: {result.reason}"


def _object(event: dict) -> dict:
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    return obj if isinstance(obj, dict) else {}


def _handle_checkout_session(event: dict, reconciler: EntitlementReconciler) -> ReconcileResult:
    """Handle checkout.session.completed event."""
    session = _object(event)

    # One-off payment checkouts carry no subscription; sessions without a
    # mode are treated as subscription checkouts
    mode = session.get("mode")
    if mode is not None and mode != "subscription":
        _logger.debug("Ignoring non-subscription checkout")
        return ReconcileResult(event["type"], OUTCOME_IGNORED, reason="not a subscription checkout")

    return reconciler.handle_checkout_completed(session)


def _handle_subscription_updated(event: dict, reconciler: EntitlementReconciler) -> ReconcileResult:
    """Handle customer.subscription.updated event."""
    return reconciler.handle_subscription_updated(_object(event))


def _handle_subscription_deleted(event: dict, reconciler: EntitlementReconciler) -> ReconcileResult:
    """Handle customer.subscription.deleted event."""
    return reconciler.handle_subscription_deleted(_object(event))
