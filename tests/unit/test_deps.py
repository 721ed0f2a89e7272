"""Unit tests for FastAPI dependency injection functions."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import Response

from src.api.deps import get_cart_context, get_cart_cookie_config, get_cart_token, get_shop
from src.api.middleware.error_handler import NotFoundError


def _request(headers: dict[str, str] | None = None, cookies: dict[str, str] | None = None) -> MagicMock:
    request = MagicMock()
    request.headers = headers or {}
    request.cookies = cookies or {}
    return request


class TestGetCartToken:
    """Tests for get_cart_token."""

    def test_header_wins_over_cookie(self) -> None:
        request = _request(headers={"X-Cart-Token": "from-header"}, cookies={"storefront_cart": "from-cookie"})

        assert get_cart_token(request) == "from-header"

    def test_falls_back_to_cookie(self) -> None:
        assert get_cart_token(_request(cookies={"storefront_cart": "from-cookie"})) == "from-cookie"

    def test_none_without_either(self) -> None:
        assert get_cart_token(_request()) is None


class TestCartCookieConfig:
    def test_secure_cookie_allows_cross_site(self) -> None:
        config = get_cart_cookie_config()

        assert config["key"] == "storefront_cart"
        assert config["httponly"] is True
        assert config["samesite"] == "none"

    def test_insecure_cookie_uses_lax(self) -> None:
        with patch("src.api.deps.get_settings") as mock_settings:
            mock_settings.return_value.cart_cookie_secure = False

            assert get_cart_cookie_config()["samesite"] == "lax"


class TestGetShop:
    """Tests for get_shop."""

    @pytest.mark.asyncio
    async def test_raises_not_found_for_unknown_slug(self) -> None:
        with patch("src.api.deps.ShopService") as mock_service:
            mock_service.return_value.get_shop_by_slug = AsyncMock(return_value=None)

            with pytest.raises(NotFoundError):
                await get_shop("missing")


class TestGetCartContext:
    """Tests for get_cart_context."""

    @pytest.mark.asyncio
    async def test_guest_without_token_is_issued_one(self, shop: dict[str, Any], cart: dict[str, Any]) -> None:
        response = Response()
        with patch("src.api.deps.CartService") as mock_service:
            service = mock_service.return_value
            service.generate_cart_token.return_value = "a" * 48
            service.get_cart = AsyncMock(return_value=cart)

            ctx = await get_cart_context(_request(), response, shop, None)

        assert ctx.cart_token == "a" * 48
        assert response.headers["X-Cart-Token"] == "a" * 48
        assert "storefront_cart=" in response.headers["set-cookie"]
        service.get_cart.assert_awaited_once_with(shop, cart_token="a" * 48, customer_id=None)

    @pytest.mark.asyncio
    async def test_customer_is_not_issued_a_token(self, shop: dict[str, Any], cart: dict[str, Any]) -> None:
        response = Response()
        with patch("src.api.deps.CartService") as mock_service:
            service = mock_service.return_value
            service.get_cart = AsyncMock(return_value=cart)

            ctx = await get_cart_context(_request(), response, shop, 42)

        assert ctx.customer_id == 42
        assert ctx.cart_token is None
        assert "X-Cart-Token" not in response.headers
        service.generate_cart_token.assert_not_called()
