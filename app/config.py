# app/config.py
"""
Centralized configuration management with startup validation.

Defines REQUIRED vs OPTIONAL environment variables and provides
safe configuration loading with validation and logging.

Missing Stripe or frontend settings do not stop the service: the affected
endpoints answer 500 at request time instead.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from billing.stripe_client import get_stripe_key, get_webhook_secret, is_billing_enabled
from persistence.firestore import (
    StoreConfigurationError,
    get_service_account_json,
    parse_service_account,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

SERVICE_NAME = "preponyx-billing"
SERVICE_VERSION = "0.1.0"

# Default values
DEFAULT_MAX_REQUEST_SIZE_BYTES = 1_048_576  # 1MB
MIN_REQUEST_SIZE_BYTES = 1024  # 1KB minimum
DEFAULT_CORS_ALLOWED_ORIGINS = ("http://localhost:5173", "https://preponyx.web.app")

# Sensitive substrings that should never appear in logs
SENSITIVE_SUBSTRINGS = ("key", "token", "secret", "password", "credential", "account")


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class AppConfig:
    """Application configuration loaded from environment."""

    # Service info
    service_name: str = SERVICE_NAME
    service_version: str = SERVICE_VERSION
    environment: str = "development"

    # Security settings
    max_request_size_bytes: int = DEFAULT_MAX_REQUEST_SIZE_BYTES
    cors_allowed_origins: Tuple[str, ...] = DEFAULT_CORS_ALLOWED_ORIGINS

    # Stripe (REQUIRED for checkout, portal and webhooks)
    stripe_secret_key: str = field(default="", repr=False)
    stripe_webhook_secret: str = field(default="", repr=False)

    # Redirect base for Checkout success/cancel URLs (REQUIRED for checkout)
    frontend_url: str = ""

    # Firestore service account JSON (OPTIONAL - application default
    # credentials are used without it)
    firebase_service_account: str = field(default="", repr=False)
    firebase_credentials_valid: bool = True

    # Warnings collected during config load
    warnings: list = field(default_factory=list)

    @property
    def billing_enabled(self) -> bool:
        return is_billing_enabled(self.stripe_secret_key)

    @property
    def webhook_secret_present(self) -> bool:
        return bool(self.stripe_webhook_secret)

    @property
    def firebase_service_account_present(self) -> bool:
        return bool(self.firebase_service_account)


# =============================================================================
# Configuration Loading
# =============================================================================


def _parse_int_env(
    name: str, default: int, min_value: Optional[int] = None
) -> tuple[int, Optional[str]]:
    """
    Parse an integer environment variable with validation.

    Returns (value, warning_message).
    On invalid input, returns default with a warning.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default, None

    try:
        value = int(raw)
    except ValueError:
        warning = f"{name}='{raw}' is not a valid integer; using default {default}"
        return default, warning

    if min_value is not None and value < min_value:
        warning = f"{name}={value} is below minimum {min_value}; using default {default}"
        return default, warning

    return value, None


def _parse_origins_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Parse a comma-separated origin list. Trailing slashes are dropped."""
    raw = os.environ.get(name, "")
    origins = tuple(
        origin.strip().rstrip("/")
        for origin in raw.split(",")
        if origin.strip()
    )
    return origins or default


def load_config(fail_fast: bool = True) -> AppConfig:
    """
    Load and validate application configuration from environment.

    Args:
        fail_fast: If True, raise ConfigurationError on critical issues.
                   If False, collect warnings and continue.

    Returns:
        AppConfig instance with validated configuration.

    Raises:
        ConfigurationError: If the service account JSON is malformed
                           and fail_fast is True.
    """
    warnings = []

    # Environment
    environment = os.environ.get("RAILWAY_ENVIRONMENT", "development")

    # Security settings with validation
    max_request_size, size_warning = _parse_int_env(
        "MAX_REQUEST_SIZE_BYTES",
        DEFAULT_MAX_REQUEST_SIZE_BYTES,
        min_value=MIN_REQUEST_SIZE_BYTES,
    )
    if size_warning:
        warnings.append(size_warning)

    cors_allowed_origins = _parse_origins_env(
        "CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ALLOWED_ORIGINS
    )

    # Stripe
    stripe_secret_key = get_stripe_key().strip()
    stripe_webhook_secret = get_webhook_secret().strip()
    if not is_billing_enabled(stripe_secret_key):
        warnings.append(
            "STRIPE_SECRET_KEY is not set; checkout and portal endpoints will return 500"
        )
    if not stripe_webhook_secret:
        warnings.append(
            "STRIPE_WEBHOOK_SECRET is not set; webhook deliveries will be rejected"
        )

    frontend_url = os.environ.get("FRONTEND_URL", "").strip().rstrip("/")
    if not frontend_url:
        warnings.append("FRONTEND_URL is not set; checkout endpoint will return 500")

    # Firestore credentials (validate shape, never log contents)
    firebase_service_account = get_service_account_json().strip()
    firebase_credentials_valid = True
    try:
        parse_service_account(firebase_service_account)
    except StoreConfigurationError as e:
        if fail_fast:
            raise ConfigurationError(f"FIREBASE_SERVICE_ACCOUNT: {e}") from e
        warnings.append(f"FIREBASE_SERVICE_ACCOUNT is invalid ({e}); document store disabled")
        firebase_credentials_valid = False

    # Log warnings
    for warning in warnings:
        logger.warning(f"[CONFIG] {warning}")

    return AppConfig(
        environment=environment,
        max_request_size_bytes=max_request_size,
        cors_allowed_origins=cors_allowed_origins,
        stripe_secret_key=stripe_secret_key,
        stripe_webhook_secret=stripe_webhook_secret,
        frontend_url=frontend_url,
        firebase_service_account=firebase_service_account,
        firebase_credentials_valid=firebase_credentials_valid,
        warnings=warnings,
    )


def log_config_snapshot(config: AppConfig) -> str:
    """
    Generate and log a safe configuration snapshot.

    Returns the snapshot string for testing purposes.
    Never logs actual secret values - only boolean presence flags.
    """
    snapshot = (
        f"[STARTUP] service={config.service_name} "
        f"version={config.service_version} "
        f"environment={config.environment} "
        f"max_request_size_bytes={config.max_request_size_bytes} "
        f"cors_allowed_origins={','.join(config.cors_allowed_origins)} "
        f"frontend_url_present={bool(config.frontend_url)} "
        f"billing_enabled={config.billing_enabled} "
        f"webhook_secret_present={config.webhook_secret_present} "
        f"firebase_service_account_present={config.firebase_service_account_present}"
    )
    logger.info(snapshot)
    return snapshot


def validate_config_snapshot_safety(snapshot: str) -> bool:
    """
    Validate that a config snapshot doesn't contain sensitive values.

    Returns True if safe, False if potentially unsafe.
    """
    snapshot_lower = snapshot.lower()

    # We allow "secret_present=" but not "secret=" followed by a value
    for sensitive in SENSITIVE_SUBSTRINGS:
        pattern = rf"{sensitive}=(?!true|false)"
        if re.search(pattern, snapshot_lower):
            return False

    return True
