# persistence/firestore.py
"""
Firestore client initialization.

Credentials come from FIREBASE_SERVICE_ACCOUNT (service account JSON).
Without it, Application Default Credentials are used, which is what
Cloud Run and other Google-hosted runtimes provide.

The Firebase app is initialized at most once per process.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.auth.exceptions import DefaultCredentialsError

_logger = logging.getLogger(__name__)


class StoreConfigurationError(Exception):
    """Raised when the document store cannot be configured."""
    pass


def get_service_account_json() -> str:
    """Get the service account JSON from environment."""
    return os.environ.get("FIREBASE_SERVICE_ACCOUNT", "")


def parse_service_account(raw: str) -> Optional[dict]:
    """
    Parse a service account JSON string.

    Returns:
        Parsed dict, or None when raw is empty

    Raises:
        StoreConfigurationError: If raw is not a JSON object
    """
    if not raw:
        return None
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StoreConfigurationError(f"Invalid service account JSON: {e.msg}") from e
    if not isinstance(info, dict):
        raise StoreConfigurationError("Service account JSON must be an object")
    return info


def _get_or_init_app(service_account: Optional[dict]) -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if service_account:
        cred = credentials.Certificate(service_account)
        _logger.info(
            "Initializing Firebase with service account",
            extra={"project_id": service_account.get("project_id")},
        )
    else:
        cred = credentials.ApplicationDefault()
        _logger.info("Initializing Firebase with application default credentials")
    return firebase_admin.initialize_app(cred)


def init_firestore(raw_service_account: Optional[str] = None) -> Any:
    """
    Initialize Firebase and return a Firestore client.

    Raises:
        StoreConfigurationError: If credentials are unusable
    """
    raw = get_service_account_json() if raw_service_account is None else raw_service_account
    service_account = parse_service_account(raw)

    try:
        app = _get_or_init_app(service_account)
        return firestore.client(app)
    except (ValueError, IOError, DefaultCredentialsError) as e:
        raise StoreConfigurationError(f"Firestore initialization failed: {e}") from e
