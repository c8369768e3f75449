# persistence/__init__.py
"""
Persistence layer.

Provides Firestore-backed storage for:
- User entitlement records (plan, subscription state, feature limits)
"""

from persistence.entitlements import EntitlementStore
from persistence.firestore import StoreConfigurationError, init_firestore

__all__ = [
    "EntitlementStore",
    "StoreConfigurationError",
    "init_firestore",
]
