# persistence/entitlements.py
"""
User entitlement records in Firestore.

One document per user at ``users/{userId}``. Writes are merge-sets only:
the store never reads a record back before writing it, so concurrent
deliveries for the same user converge on Firestore's per-document merge.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

_logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


class EntitlementStore:
    """Merge-upsert access to user entitlement documents."""

    def __init__(self, client: Any, collection: str = USERS_COLLECTION):
        self._client = client
        self._collection = collection

    def _document(self, user_id: str):
        return self._client.collection(self._collection).document(user_id)

    def merge_user(self, user_id: str, fields: dict) -> None:
        """
        Create the user document if absent, otherwise overwrite only the
        given fields.

        The merge is scoped to the given top-level fields, so a map such as
        featureLimits is replaced whole rather than merged key by key.
        """
        if not user_id:
            raise ValueError("user_id is required")

        self._document(user_id).set(fields, merge=list(fields))
        _logger.info(
            f"Merged entitlement fields for user {user_id}",
            extra={"fields": sorted(fields)},
        )

    def get_user(self, user_id: str) -> Optional[dict]:
        """Read a user document. Returns None if it does not exist."""
        snapshot = self._document(user_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()
