# app/dependencies.py
"""
FastAPI dependencies for process-wide clients.

Clients are built once at startup and stored on ``app.state``. Handlers
receive them through these functions, which tests replace with
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from app.config import AppConfig
from billing.reconciler import EntitlementReconciler
from billing.stripe_client import PaymentsClient


def get_config(request: Request) -> AppConfig:
    """Application configuration loaded at startup."""
    return request.app.state.config


def get_payments_client(request: Request) -> Optional[PaymentsClient]:
    """Stripe client, or None when STRIPE_SECRET_KEY is missing."""
    return getattr(request.app.state, "payments", None)


def get_reconciler(request: Request) -> Optional[EntitlementReconciler]:
    """Webhook reconciler, or None when the document store is unavailable."""
    return getattr(request.app.state, "reconciler", None)
