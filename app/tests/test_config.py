# app/tests/test_config.py
"""Tests for configuration management and startup validation."""
import json
import os
from unittest.mock import patch

import pytest

from app.config import (
    DEFAULT_CORS_ALLOWED_ORIGINS,
    DEFAULT_MAX_REQUEST_SIZE_BYTES,
    AppConfig,
    ConfigurationError,
    load_config,
    log_config_snapshot,
    validate_config_snapshot_safety,
)

FULL_ENV = {
    "STRIPE_SECRET_KEY": "sk_test_super_secret_12345",
    "STRIPE_WEBHOOK_SECRET": "whsec_super_secret_67890",
    "FRONTEND_URL": "https://preponyx.web.app/",
    "FIREBASE_SERVICE_ACCOUNT": json.dumps({"type": "service_account", "private_key": "pk-abc"}),
}


class TestLoadConfig:
    """Tests for load_config function."""

    def test_default_values(self):
        """Config loads with sensible defaults when no env vars set."""
        with patch.dict(os.environ, {}, clear=True):
            config = load_config()

        assert config.service_name == "preponyx-billing"
        assert config.service_version == "0.1.0"
        assert config.environment == "development"
        assert config.max_request_size_bytes == DEFAULT_MAX_REQUEST_SIZE_BYTES
        assert config.cors_allowed_origins == DEFAULT_CORS_ALLOWED_ORIGINS
        assert config.billing_enabled is False
        assert config.webhook_secret_present is False
        assert config.frontend_url == ""
        assert config.firebase_service_account_present is False

    def test_environment_from_railway(self):
        """Environment is read from RAILWAY_ENVIRONMENT."""
        with patch.dict(os.environ, {"RAILWAY_ENVIRONMENT": "production"}, clear=True):
            config = load_config()

        assert config.environment == "production"

    def test_full_configuration(self):
        with patch.dict(os.environ, FULL_ENV, clear=True):
            config = load_config()

        assert config.billing_enabled is True
        assert config.webhook_secret_present is True
        assert config.frontend_url == "https://preponyx.web.app"
        assert config.firebase_service_account_present is True
        assert config.firebase_credentials_valid is True
        assert config.warnings == []

    def test_missing_stripe_settings_warn(self):
        with patch.dict(os.environ, {}, clear=True):
            config = load_config()

        assert any("STRIPE_SECRET_KEY" in w for w in config.warnings)
        assert any("STRIPE_WEBHOOK_SECRET" in w for w in config.warnings)
        assert any("FRONTEND_URL" in w for w in config.warnings)

    def test_cors_origins_from_env(self):
        with patch.dict(
            os.environ,
            {"CORS_ALLOWED_ORIGINS": "https://a.test/, https://b.test ,"},
            clear=True,
        ):
            config = load_config()

        assert config.cors_allowed_origins == ("https://a.test", "https://b.test")

    def test_secrets_hidden_from_repr(self):
        with patch.dict(os.environ, FULL_ENV, clear=True):
            config = load_config()

        assert "super_secret" not in repr(config)
        assert "pk-abc" not in repr(config)


class TestServiceAccountValidation:
    """Tests for FIREBASE_SERVICE_ACCOUNT validation."""

    def test_malformed_json_fails_fast(self):
        with patch.dict(os.environ, {"FIREBASE_SERVICE_ACCOUNT": "{oops"}, clear=True):
            with pytest.raises(ConfigurationError, match="FIREBASE_SERVICE_ACCOUNT"):
                load_config()

    def test_malformed_json_warns_without_fail_fast(self):
        with patch.dict(os.environ, {"FIREBASE_SERVICE_ACCOUNT": "{oops"}, clear=True):
            config = load_config(fail_fast=False)

        assert config.firebase_credentials_valid is False
        assert any("document store disabled" in w for w in config.warnings)


class TestMaxRequestSizeValidation:
    """Tests for MAX_REQUEST_SIZE_BYTES validation."""

    def test_valid_size_accepted(self):
        """Valid size value is accepted."""
        with patch.dict(os.environ, {"MAX_REQUEST_SIZE_BYTES": "2097152"}, clear=True):
            config = load_config()

        assert config.max_request_size_bytes == 2097152

    def test_invalid_string_uses_default_with_warning(self):
        """Non-integer string falls back to default with warning."""
        with patch.dict(os.environ, {"MAX_REQUEST_SIZE_BYTES": "not-a-number"}, clear=True):
            config = load_config()

        assert config.max_request_size_bytes == DEFAULT_MAX_REQUEST_SIZE_BYTES
        assert any("not a valid integer" in w for w in config.warnings)

    def test_below_minimum_uses_default_with_warning(self):
        """Values below the minimum fall back to default with warning."""
        with patch.dict(os.environ, {"MAX_REQUEST_SIZE_BYTES": "0"}, clear=True):
            config = load_config()

        assert config.max_request_size_bytes == DEFAULT_MAX_REQUEST_SIZE_BYTES
        assert any("below minimum" in w for w in config.warnings)


class TestConfigSnapshotSafety:
    """Tests for config snapshot security."""

    def test_snapshot_contains_expected_fields(self):
        """Config snapshot contains required observability fields."""
        snapshot = log_config_snapshot(AppConfig())

        assert "service=" in snapshot
        assert "version=" in snapshot
        assert "environment=" in snapshot
        assert "billing_enabled=" in snapshot
        assert "webhook_secret_present=" in snapshot
        assert "firebase_service_account_present=" in snapshot

    def test_snapshot_never_contains_actual_secrets(self):
        """Config snapshot uses boolean presence, not actual values."""
        with patch.dict(os.environ, FULL_ENV, clear=True):
            config = load_config()
            snapshot = log_config_snapshot(config)

        assert "super_secret" not in snapshot
        assert "pk-abc" not in snapshot
        assert "billing_enabled=True" in snapshot
        assert "webhook_secret_present=True" in snapshot
        assert validate_config_snapshot_safety(snapshot) is True

    def test_validate_catches_leaked_secret(self):
        """Safety validator catches accidentally logged secrets."""
        assert validate_config_snapshot_safety("service=test secret=whsec_1234") is False
        assert validate_config_snapshot_safety("service=test key=sk-1234") is False

    def test_validate_allows_presence_flags(self):
        """Safety validator allows *_present boolean flags."""
        good_snapshot = "api_key_present=True webhook_secret_present=False"
        assert validate_config_snapshot_safety(good_snapshot) is True
