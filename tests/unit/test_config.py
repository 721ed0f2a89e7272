"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED_ENV,
            "APP_ENV": "testing",
            "DEBUG": "true",
            "PORT": "9000",
            "PAYSTACK_SECRET_KEY": "sk_test_paystack",
            "DEFAULT_CURRENCY": "GHS",
            "GUEST_CART_EXPIRY_DAYS": "3",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_env == "testing"
            assert settings.debug is True
            assert settings.port == 9000
            assert settings.paystack_secret_key == "sk_test_paystack"
            assert settings.default_currency == "GHS"
            assert settings.guest_cart_expiry_days == 3

    def test_settings_defaults(self) -> None:
        """Test storefront defaults when only required values are set."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings(_env_file=None)

            assert settings.default_currency == "NGN"
            assert settings.customer_cart_expiry_days == 30
            assert settings.cart_cookie_name == "storefront_cart"
            assert settings.paystack_base_url == "https://api.paystack.co"
            assert settings.stripe_secret_key == ""

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {**REQUIRED_ENV, "CORS_ORIGINS": "http://localhost:3000, http://example.com ,"}

        with patch.dict(os.environ, env_vars, clear=False):
            origins = Settings().cors_origins_list

            assert origins == ["http://localhost:3000", "http://example.com"]

    @pytest.mark.parametrize(
        ("key", "expected"),
        [("sk_test_abc", True), ("sk_live_abc", False), ("", False)],
    )
    def test_is_stripe_test_mode(self, key: str, expected: bool) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "STRIPE_SECRET_KEY": key}, clear=False):
            assert Settings().is_stripe_test_mode is expected

    def test_settings_is_production_property(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "APP_ENV": "production"}, clear=False):
            assert Settings().is_production is True

    def test_settings_missing_required_raises(self) -> None:
        """Test that missing Supabase settings raise a ValidationError."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestGetSettings:
    """Tests for the cached settings accessor."""

    def test_get_settings_returns_cached_instance(self) -> None:
        get_settings.cache_clear()

        assert get_settings() is get_settings()

        get_settings.cache_clear()
