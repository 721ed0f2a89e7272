"""Integration tests for checkout, payment callback and order endpoints."""

from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.schemas.cart import CartSummary
from src.schemas.checkout import CheckoutResponse, InlinePaymentConfig, OrderResponse
from src.services.checkout_service import CheckoutFieldError, CheckoutService, InsufficientStockError

SHOP_URL = "/api/v1/shops/my-shop"
GUEST = {"X-Cart-Token": "guest-token"}


def _address(**overrides: Any) -> dict[str, Any]:
    return {
        "first_name": "Ada",
        "last_name": "Obi",
        "phone": "+2348000000000",
        "address_line_1": "12 Marina Road",
        "city": "Lagos",
        "state": "Lagos",
        "country": "NG",
        **overrides,
    }


@pytest.fixture
def order() -> dict[str, Any]:
    return {
        "id": 500,
        "shop_id": 1,
        "cart_id": 100,
        "order_number": "ORD-20260101-ABC123",
        "status": "pending",
        "payment_status": "unpaid",
        "payment_method": "paystack",
        "payment_reference": "MY-SHOP-REF",
        "customer_id": None,
        "cart_token": "guest-token",
        "subtotal": "13000.00",
        "tax_amount": "375.00",
        "shipping_cost": "1500.00",
        "total_amount": "14875.00",
        "currency": "NGN",
    }


def _order_response(order: dict[str, Any]) -> OrderResponse:
    return OrderResponse.model_validate({**order, "items": [], "shipping_address": {}})


class TestGetCheckout:
    """Tests for GET /shops/{slug}/checkout."""

    def test_returns_summary_reference_and_gateways(
        self, client: TestClient, storefront: dict[str, MagicMock]
    ) -> None:
        summary = CartSummary(
            item_count=1,
            subtotal=Decimal("2500.00"),
            tax=Decimal("0.00"),
            shipping_fee=Decimal("0.00"),
            total=Decimal("2500.00"),
        )
        with (
            patch("src.services.cart_service.CartService.get_cart_summary", new=AsyncMock(return_value=summary)),
            patch(
                "src.services.cart_service.CartService.ensure_checkout_reference",
                new=AsyncMock(return_value="MY-SHOP-REF"),
            ),
        ):
            response = client.get(f"{SHOP_URL}/checkout", headers=GUEST)

        assert response.status_code == 200
        data = response.json()
        assert data["payment_reference"] == "MY-SHOP-REF"
        identifiers = [g["identifier"] for g in data["gateways"]]
        assert "cash_on_delivery" in identifiers
        assert "paystack" in identifiers

    def test_empty_cart_returns_400(self, client: TestClient, storefront: dict[str, MagicMock]) -> None:
        with patch.object(CheckoutService, "get_checkout", new=AsyncMock(side_effect=ValueError("Your cart is empty"))):
            response = client.get(f"{SHOP_URL}/checkout", headers=GUEST)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "empty_cart"
        assert data["message"] == "Your cart is empty"


class TestPlaceOrder:
    """Tests for POST /shops/{slug}/checkout."""

    def test_offline_gateway_returns_redirect(
        self, client: TestClient, storefront: dict[str, MagicMock], order: dict[str, Any]
    ) -> None:
        offline = {**order, "payment_method": "cash_on_delivery"}
        result = CheckoutResponse(
            status="redirect",
            redirect_url="https://shop.example.com/shops/my-shop/checkout/success/ORD-20260101-ABC123",
            order=_order_response(offline),
        )
        with patch.object(CheckoutService, "place_order", new=AsyncMock(return_value=result)) as place_order:
            response = client.post(
                f"{SHOP_URL}/checkout",
                json={"shipping_address": _address(), "payment_method": "cash_on_delivery"},
                headers=GUEST,
            )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "redirect"
        assert data["redirect_url"].endswith("/checkout/success/ORD-20260101-ABC123")
        request = place_order.await_args.args[2]
        assert request.billing_same_as_shipping is True
        assert place_order.await_args.args[3] is None

    def test_inline_gateway_returns_payment_config(
        self, client: TestClient, storefront: dict[str, MagicMock], order: dict[str, Any]
    ) -> None:
        result = CheckoutResponse(
            status="payment_required",
            order=_order_response(order),
            inline=InlinePaymentConfig(
                gateway="paystack",
                public_key="pk_test_paystack_public",
                reference="MY-SHOP-REF",
                amount_minor=1487500,
                currency="NGN",
                callback_url="/api/v1/shops/my-shop/payment/callback/paystack",
            ),
        )
        with patch.object(CheckoutService, "place_order", new=AsyncMock(return_value=result)):
            response = client.post(
                f"{SHOP_URL}/checkout",
                json={
                    "shipping_address": _address(),
                    "payment_method": "paystack",
                    "payment_reference": "MY-SHOP-REF",
                },
                headers=GUEST,
            )

        assert response.status_code == 201
        inline = response.json()["inline"]
        assert inline["amount_minor"] == 1487500
        assert inline["reference"] == "MY-SHOP-REF"

    def test_missing_address_fields_are_field_keyed(
        self, client: TestClient, storefront: dict[str, MagicMock]
    ) -> None:
        response = client.post(
            f"{SHOP_URL}/checkout",
            json={"shipping_address": _address(first_name="", city=None), "payment_method": "paystack"},
            headers=GUEST,
        )

        assert response.status_code == 422
        errors = response.json()["errors"]
        assert "shipping_address.first_name" in errors
        assert "shipping_address.city" in errors

    def test_rejected_field_is_reported_under_its_name(
        self, client: TestClient, storefront: dict[str, MagicMock]
    ) -> None:
        error = CheckoutFieldError("billing_address", "Billing address is required")
        with patch.object(CheckoutService, "place_order", new=AsyncMock(side_effect=error)):
            response = client.post(
                f"{SHOP_URL}/checkout",
                json={
                    "shipping_address": _address(),
                    "billing_same_as_shipping": False,
                    "payment_method": "cash_on_delivery",
                },
                headers=GUEST,
            )

        assert response.status_code == 422
        assert response.json()["errors"] == {"billing_address": ["Billing address is required"]}

    def test_insufficient_stock_returns_409(self, client: TestClient, storefront: dict[str, MagicMock]) -> None:
        error = InsufficientStockError("T-Shirt", available=1, requested=2)
        with patch.object(CheckoutService, "place_order", new=AsyncMock(side_effect=error)):
            response = client.post(
                f"{SHOP_URL}/checkout",
                json={"shipping_address": _address(), "payment_method": "cash_on_delivery"},
                headers=GUEST,
            )

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "insufficient_stock"
        assert data["message"] == "Insufficient stock for T-Shirt. Only 1 available."

    def test_empty_cart_returns_400(self, client: TestClient, storefront: dict[str, MagicMock]) -> None:
        error = ValueError("Cannot checkout with empty cart")
        with patch.object(CheckoutService, "place_order", new=AsyncMock(side_effect=error)):
            response = client.post(
                f"{SHOP_URL}/checkout",
                json={"shipping_address": _address(), "payment_method": "cash_on_delivery"},
                headers=GUEST,
            )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "empty_cart"
        assert data["message"] == "Cannot checkout with empty cart"


class TestPaymentCallback:
    """Tests for GET /shops/{slug}/payment/callback/{gateway}."""

    def test_paid_order_redirects_to_success(
        self, client: TestClient, storefront: dict[str, MagicMock], order: dict[str, Any]
    ) -> None:
        paid = {**order, "payment_status": "paid"}
        with patch.object(CheckoutService, "verify_payment", new=AsyncMock(return_value=paid)) as verify:
            response = client.get(
                f"{SHOP_URL}/payment/callback/paystack",
                params={"reference": "MY-SHOP-REF", "trxref": "MY-SHOP-REF"},
                follow_redirects=False,
            )

        assert response.status_code == 303
        assert response.headers["location"] == (
            "https://shop.example.com/shops/my-shop/checkout/success/ORD-20260101-ABC123"
        )
        assert verify.await_args.args[1:] == ("paystack", "MY-SHOP-REF", "MY-SHOP-REF")

    def test_unpaid_order_redirects_to_pending(
        self, client: TestClient, storefront: dict[str, MagicMock], order: dict[str, Any]
    ) -> None:
        with patch.object(CheckoutService, "verify_payment", new=AsyncMock(return_value=order)):
            response = client.get(
                f"{SHOP_URL}/payment/callback/paystack",
                params={"reference": "MY-SHOP-REF"},
                follow_redirects=False,
            )

        assert response.status_code == 303
        assert response.headers["location"].endswith("/checkout/pending/ORD-20260101-ABC123")

    def test_unknown_reference_redirects_to_storefront(
        self, client: TestClient, storefront: dict[str, MagicMock]
    ) -> None:
        with patch.object(CheckoutService, "verify_payment", new=AsyncMock(return_value=None)):
            response = client.get(
                f"{SHOP_URL}/payment/callback/paystack",
                params={"reference": "UNKNOWN"},
                follow_redirects=False,
            )

        assert response.status_code == 303
        assert response.headers["location"] == "https://shop.example.com/shops/my-shop"

    def test_offline_gateway_callback_redirects_to_pending(
        self, client: TestClient, storefront: dict[str, MagicMock], order: dict[str, Any]
    ) -> None:
        cod_order = {**order, "payment_method": "cash_on_delivery"}
        with patch.object(CheckoutService, "get_order_by_reference", new=AsyncMock(return_value=cod_order)):
            response = client.get(
                f"{SHOP_URL}/payment/callback/cash_on_delivery",
                params={"reference": "MY-SHOP-REF"},
                follow_redirects=False,
            )

        assert response.status_code == 303
        assert response.headers["location"].endswith("/checkout/pending/ORD-20260101-ABC123")

    def test_unknown_gateway_returns_404(self, client: TestClient, storefront: dict[str, MagicMock]) -> None:
        response = client.get(
            f"{SHOP_URL}/payment/callback/bitcoin",
            params={"reference": "MY-SHOP-REF"},
            follow_redirects=False,
        )

        assert response.status_code == 404


class TestGetOrder:
    """Tests for GET /shops/{slug}/orders/{order_number}."""

    def test_missing_order_returns_404(self, client: TestClient, storefront: dict[str, MagicMock]) -> None:
        with patch.object(CheckoutService, "get_order", new=AsyncMock(return_value=None)):
            response = client.get(f"{SHOP_URL}/orders/ORD-NOPE", headers=GUEST)

        assert response.status_code == 404

    def test_other_shopper_gets_403(
        self, client: TestClient, storefront: dict[str, MagicMock], order: dict[str, Any]
    ) -> None:
        with patch.object(CheckoutService, "get_order", new=AsyncMock(return_value=order)):
            response = client.get(
                f"{SHOP_URL}/orders/{order['order_number']}",
                headers={"X-Cart-Token": "someone-else"},
            )

        assert response.status_code == 403

    def test_placing_cart_can_read_order(
        self, client: TestClient, storefront: dict[str, MagicMock], order: dict[str, Any]
    ) -> None:
        with (
            patch.object(CheckoutService, "get_order", new=AsyncMock(return_value=order)),
            patch.object(
                CheckoutService, "build_order_response", new=AsyncMock(return_value=_order_response(order))
            ),
        ):
            response = client.get(f"{SHOP_URL}/orders/{order['order_number']}", headers=GUEST)

        assert response.status_code == 200
        data = response.json()
        assert data["order_number"] == "ORD-20260101-ABC123"
        assert Decimal(data["total_amount"]) == Decimal("14875.00")
