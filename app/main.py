"""Preponyx billing API - FastAPI application entrypoint."""
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import load_config, log_config_snapshot
from app.correlation import CorrelationIdMiddleware, RequestIdFilter
from app.routers import billing
from billing.reconciler import EntitlementReconciler
from billing.stripe_client import init_payments_client
from persistence.entitlements import EntitlementStore
from persistence.firestore import StoreConfigurationError, init_firestore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())
logger = logging.getLogger(__name__)

# Load and validate configuration at startup
_config = load_config(fail_fast=False)
log_config_snapshot(_config)

# Export config value for middleware (validated)
MAX_REQUEST_SIZE_BYTES = _config.max_request_size_bytes


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests exceeding size limit to prevent payload bombs."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                length = int(content_length)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"error": "Invalid Content-Length header"},
                )
            if length > MAX_REQUEST_SIZE_BYTES:
                return JSONResponse(
                    status_code=413,
                    content={"error": "Request entity too large"},
                )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


# Capture service start time for uptime reporting
_SERVICE_START_TIME = datetime.now(timezone.utc)

app = FastAPI(
    title="Preponyx Billing",
    description="Stripe subscriptions and Firestore plan entitlements",
    version=_config.service_version,
)

# Middleware stack (order matters - added in reverse execution order)
# 1. CorrelationId: First to run, wraps everything, adds X-Request-Id to responses
# 2. CORS: answers preflights for whitelisted frontend origins
# 3. SecurityHeaders: Adds security headers to responses
# 4. RequestSizeLimit: Rejects oversized requests early
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_config.cors_allowed_origins),
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(billing.router)

# Shared handles. The Stripe client needs no network to build; the store
# is initialized on startup.
app.state.config = _config
app.state.payments = init_payments_client(_config.stripe_secret_key)
app.state.reconciler = None


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed JSON bodies are client errors like missing fields."""
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.on_event("startup")
async def startup_event():
    """Initialize the Firestore client and the webhook reconciler."""
    if not _config.firebase_credentials_valid:
        logger.error("Document store disabled: invalid FIREBASE_SERVICE_ACCOUNT")
        return

    try:
        client = init_firestore(_config.firebase_service_account)
    except StoreConfigurationError as e:
        logger.error(f"Document store disabled: {e}")
        return

    store = EntitlementStore(client)
    app.state.reconciler = EntitlementReconciler(store, app.state.payments)
    logger.info("Document store initialized")


@app.get("/health")
async def health():
    """Health check with service observability."""
    return {
        "status": "healthy",
        "service": _config.service_name,
        "version": _config.service_version,
        "environment": _config.environment,
        "started_at": _SERVICE_START_TIME.isoformat(),
        "billing_enabled": app.state.payments is not None,
        "store_ready": app.state.reconciler is not None,
    }
