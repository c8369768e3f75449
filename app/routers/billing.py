"""
Billing API endpoints.

- POST /create-checkout-session
- POST /create-customer-portal-session
- POST /stripe-webhook
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import AppConfig
from app.correlation import get_request_id
from app.dependencies import get_config, get_payments_client, get_reconciler
from billing.reconciler import EntitlementReconciler
from billing.service import (
    BillingDisabledError,
    CheckoutError,
    MissingFieldsError,
    PortalError,
    create_checkout_session,
    create_customer_portal_session,
)
from billing.stripe_client import PaymentsClient
from billing.webhooks import (
    SignatureVerificationError,
    WebhookError,
    process_webhook_event,
    verify_webhook_signature,
)

_logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])

CHECKOUT_PATH = "/create-checkout-session"
PORTAL_PATH = "/create-customer-portal-session"
WEBHOOK_PATH = "/stripe-webhook"

# Methods answered with 405 on billing paths
_REJECTED_METHODS = ["GET", "PUT", "PATCH", "DELETE"]


# =============================================================================
# Request Schemas
# =============================================================================

# Field names match the frontend's JSON body. Presence is checked by the
# billing service so missing fields map to 400, not 422.

class CheckoutRequest(BaseModel):
    planId: Optional[str] = None
    planName: Optional[str] = None
    priceId: Optional[str] = None
    userId: Optional[str] = None
    userEmail: Optional[str] = None


class PortalRequest(BaseModel):
    customerId: Optional[str] = None
    returnUrl: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# =============================================================================
# Checkout
# =============================================================================


@router.post(CHECKOUT_PATH)
async def create_checkout(
    raw_request: Request,
    request: Optional[CheckoutRequest] = Body(None),
    config: AppConfig = Depends(get_config),
    payments: Optional[PaymentsClient] = Depends(get_payments_client),
):
    """Create a Stripe Checkout session and return its hosted URL."""
    request = request or CheckoutRequest()
    request_id = get_request_id(raw_request) or "unknown"

    try:
        url = create_checkout_session(
            payments,
            config.frontend_url,
            plan_id=request.planId,
            plan_name=request.planName,
            price_id=request.priceId,
            user_id=request.userId,
            user_email=request.userEmail,
        )
    except BillingDisabledError as e:
        _logger.error(f"Checkout unavailable: {e}", extra={"request_id": request_id})
        return _error(500, str(e))
    except MissingFieldsError as e:
        return _error(400, str(e))
    except CheckoutError as e:
        _logger.error(f"Checkout error: {e}", extra={"request_id": request_id})
        return _error(500, str(e))

    return {"url": url}


# =============================================================================
# Customer Portal
# =============================================================================


@router.post(PORTAL_PATH)
async def create_portal(
    raw_request: Request,
    request: Optional[PortalRequest] = Body(None),
    payments: Optional[PaymentsClient] = Depends(get_payments_client),
):
    """Create a Stripe Customer Portal session and return its URL."""
    request = request or PortalRequest()
    request_id = get_request_id(raw_request) or "unknown"

    try:
        url = create_customer_portal_session(
            payments,
            customer_id=request.customerId,
            return_url=request.returnUrl,
        )
    except BillingDisabledError as e:
        _logger.error(f"Portal unavailable: {e}", extra={"request_id": request_id})
        return _error(500, str(e))
    except MissingFieldsError as e:
        return _error(400, str(e))
    except PortalError as e:
        _logger.error(f"Portal error: {e}", extra={"request_id": request_id})
        return _error(500, str(e))

    return {"url": url}


# =============================================================================
# Webhook
# =============================================================================


@router.post(WEBHOOK_PATH)
async def handle_stripe_webhook(
    raw_request: Request,
    config: AppConfig = Depends(get_config),
    reconciler: Optional[EntitlementReconciler] = Depends(get_reconciler),
):
    """
    Handle Stripe webhook events.

    Verifies the signature over the raw body, then reconciles. Every
    verified event is acknowledged with 200, including events that could not
    be applied; failures are logged.
    """
    request_id = get_request_id(raw_request) or "unknown"

    payload = await raw_request.body()
    signature = raw_request.headers.get("stripe-signature", "")

    if not payload:
        _logger.warning("Webhook received without body")
        return _error(400, "Missing request body")

    if not signature:
        _logger.warning("Webhook received without signature")
        return _error(400, "Missing signature")

    try:
        event = verify_webhook_signature(payload, signature, config.stripe_webhook_secret)
    except SignatureVerificationError as e:
        _logger.warning(f"Webhook rejected: {e}", extra={"request_id": request_id})
        return _error(400, f"Webhook Error: {e}")
    except WebhookError as e:
        _logger.warning(f"Webhook rejected: {e}", extra={"request_id": request_id})
        return _error(400, f"Webhook Error: {e}")

    if reconciler is None:
        _logger.error(
            "Document store not configured; webhook acknowledged without reconciling",
            extra={"request_id": request_id, "event_id": event.get("id")},
        )
        return {"received": True, "message": "Document store not configured; event not applied"}

    success, message = process_webhook_event(event, reconciler)
    if not success:
        _logger.warning(
            f"Webhook processing failed: {message}",
            extra={"request_id": request_id, "event_id": event.get("id")},
        )

    return {"received": True, "message": message}


# =============================================================================
# Method handling
# =============================================================================

# CORS preflights are answered by CORSMiddleware before reaching these.


@router.options(CHECKOUT_PATH)
@router.options(PORTAL_PATH)
async def billing_options():
    return Response(status_code=200)


@router.api_route(CHECKOUT_PATH, methods=_REJECTED_METHODS, include_in_schema=False)
@router.api_route(PORTAL_PATH, methods=_REJECTED_METHODS, include_in_schema=False)
@router.api_route(WEBHOOK_PATH, methods=_REJECTED_METHODS, include_in_schema=False)
async def method_not_allowed():
    return _error(405, "Method not allowed")
