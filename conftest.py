"""Configure pytest for the billing service."""
import copy
import os

import pytest

# =============================================================================
# Test Environment Configuration
# =============================================================================
# Set environment for tests BEFORE any app imports so app.main builds its
# clients from known values.
os.environ.setdefault("RAILWAY_ENVIRONMENT", "test")
os.environ["STRIPE_SECRET_KEY"] = "sk_test_0123456789abcdef"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["FRONTEND_URL"] = "https://preponyx.web.app"
os.environ.pop("FIREBASE_SERVICE_ACCOUNT", None)
os.environ.pop("STRIPE_PREMIUM_PRICE_ID", None)
os.environ.pop("STRIPE_PRO_PRICE_ID", None)


# =============================================================================
# Firestore test double
# =============================================================================


class FakeSnapshot:
    def __init__(self, data):
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, db, collection, doc_id):
        self._db = db
        self._key = (collection, doc_id)

    def set(self, data, merge=False):
        self._db.writes.append((self._key, copy.deepcopy(data), merge))
        if merge is False:
            self._db.documents[self._key] = copy.deepcopy(data)
            return
        existing = self._db.documents.setdefault(self._key, {})
        fields = data.keys() if merge is True else merge
        for name in fields:
            existing[name] = copy.deepcopy(data[name])

    def get(self):
        return FakeSnapshot(self._db.documents.get(self._key))


class FakeCollection:
    def __init__(self, db, name):
        self._db = db
        self._name = name

    def document(self, doc_id):
        return FakeDocument(self._db, self._name, doc_id)


class FakeFirestore:
    """In-memory stand-in for google.cloud.firestore.Client."""

    def __init__(self):
        self.documents = {}
        self.writes = []

    def collection(self, name):
        return FakeCollection(self, name)

    def user(self, user_id):
        return self.documents.get(("users", user_id))


@pytest.fixture
def fake_firestore():
    """Empty in-memory Firestore."""
    return FakeFirestore()


@pytest.fixture
def entitlement_store(fake_firestore):
    """EntitlementStore backed by the in-memory Firestore."""
    from persistence.entitlements import EntitlementStore
    return EntitlementStore(fake_firestore)
