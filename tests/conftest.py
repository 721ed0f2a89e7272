"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_paystack_secret")
os.environ.setdefault("PAYSTACK_PUBLIC_KEY", "pk_test_paystack_public")
os.environ.setdefault("FRONTEND_URL", "https://shop.example.com")


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache."""
    from src.core.config import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def shop() -> dict[str, Any]:
    """A storefront-enabled shop charging 7.5% VAT and flat shipping."""
    return {
        "id": 1,
        "tenant_id": 10,
        "slug": "my-shop",
        "name": "My Shop",
        "currency": "NGN",
        "is_active": True,
        "storefront_enabled": True,
        "vat_enabled": True,
        "vat_rate": "7.5",
        "storefront_settings": {"shipping_fee": "1500", "free_shipping_threshold": "50000"},
    }


@pytest.fixture
def cart() -> dict[str, Any]:
    return {
        "id": 100,
        "tenant_id": 10,
        "shop_id": 1,
        "customer_id": None,
        "cart_token": "guest-token",
        "checkout_reference": None,
    }


@pytest.fixture
def product_row() -> dict[str, Any]:
    """A cart_items row for a product with its embedded variant."""
    return {
        "id": 1,
        "cart_id": 100,
        "sellable_type": "product_variant",
        "sellable_id": 11,
        "product_variant_id": 11,
        "product_packaging_type_id": None,
        "quantity": 2,
        "price": "2500.00",
        "product_variant": {
            "id": 11,
            "sku": "TSHIRT-M",
            "price": "2500.00",
            "available_stock": 5,
            "product": {"id": 3, "name": "T-Shirt", "is_taxable": True, "track_stock": True},
        },
        "packaging_type": None,
        "sellable": None,
    }


@pytest.fixture
def service_row() -> dict[str, Any]:
    """A cart_items row for a service with a material tier and add-ons."""
    return {
        "id": 2,
        "cart_id": 100,
        "sellable_type": "service_variant",
        "sellable_id": 21,
        "product_variant_id": None,
        "quantity": 1,
        "price": "8000.00",
        "base_price": "8000.00",
        "material_option": "shop_materials",
        "selected_addons": [
            {"addon_id": 5, "name": "Express", "quantity": 1, "unit_price": "1000.00"},
        ],
        "product_variant": None,
        "packaging_type": None,
        "sellable": {
            "id": 21,
            "name": "Full Set",
            "base_price": "6000.00",
            "customer_materials_price": "6000.00",
            "shop_materials_price": "8000.00",
            "service": {"id": 7, "name": "Braiding", "has_material_options": True, "is_available_online": True},
        },
    }


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[Any, None, None]:
    """Provide a TestClient for the application."""
    from fastapi.testclient import TestClient

    from src.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def storefront(shop: dict[str, Any], cart: dict[str, Any]) -> Generator[dict[str, MagicMock], None, None]:
    """Patch database access behind the routes and resolve the test shop and cart.

    Yields:
        dict: The per-module Supabase mocks, keyed by service name.
    """
    from src.services.cart_service import CartService
    from src.services.shop_service import ShopService

    mocks = {name: MagicMock() for name in ("shop", "cart", "checkout")}
    with (
        patch("src.services.shop_service.get_supabase_client", return_value=mocks["shop"]),
        patch("src.services.cart_service.get_supabase_client", return_value=mocks["cart"]),
        patch("src.services.checkout_service.get_supabase_client", return_value=mocks["checkout"]),
        patch.object(ShopService, "get_shop_by_slug", new=AsyncMock(return_value=shop)),
        patch.object(CartService, "get_cart", new=AsyncMock(return_value=cart)),
    ):
        yield mocks
