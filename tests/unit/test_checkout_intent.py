"""Unit tests for the checkout intent builder."""

import random
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.schemas.checkout import CheckoutResponse, InlinePaymentConfig, OrderResponse
from src.services.checkout_intent import CheckoutInProgressError, CheckoutIntentBuilder
from src.services.payment_reference import generate_payment_reference, to_base36
from src.services.storefront_client import CheckoutValidationError, StorefrontAPIError

VALID_ADDRESS = {
    "first_name": "Ada",
    "last_name": "Obi",
    "phone": "+234 801 234 5678",
    "address_line_1": "12 Marina Road",
    "city": "Lagos",
    "state": "Lagos",
    "country": "Nigeria",
}


def _order() -> OrderResponse:
    return OrderResponse(
        order_number="ORD-20260101-ABC123",
        status="pending",
        payment_status="unpaid",
        payment_method="paystack",
        subtotal=Decimal("1500.00"),
        tax_amount=Decimal("0"),
        shipping_cost=Decimal("0"),
        total_amount=Decimal("1500.00"),
    )


def _inline(reference: str) -> InlinePaymentConfig:
    return InlinePaymentConfig(
        gateway="paystack",
        public_key="pk_test",
        reference=reference,
        amount_minor=150000,
        currency="NGN",
        callback_url="/api/v1/shops/my-shop/payment/callback/paystack",
    )


@pytest.fixture
def builder() -> CheckoutIntentBuilder:
    return CheckoutIntentBuilder(shop_slug="my-shop", shipping_address=dict(VALID_ADDRESS))


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.place_order = AsyncMock()
    return client


class TestPaymentReference:
    """Tests for payment reference generation."""

    def test_to_base36(self) -> None:
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"

    def test_reference_format(self) -> None:
        reference = generate_payment_reference("my-shop", now_ms=36**3, rng=random.Random(1))

        assert reference.startswith("MY-SHOP-1000")
        assert len(reference) == len("MY-SHOP-1000") + 6
        assert reference == reference.upper()

    def test_reference_is_generated_once(self, builder: CheckoutIntentBuilder) -> None:
        reference = builder.payment_reference

        builder.set_shipping_field("city", "Abuja")
        builder.validate()

        assert builder.payment_reference == reference
        assert reference.startswith("MY-SHOP-")


class TestValidation:
    """Tests for client-side field checks."""

    def test_valid_address_has_no_errors(self, builder: CheckoutIntentBuilder) -> None:
        assert builder.validate() == {}

    def test_missing_field_is_keyed_by_path(self, builder: CheckoutIntentBuilder) -> None:
        builder.set_shipping_field("city", "")

        errors = builder.validate()

        assert errors == {"shipping_address.city": ["City is required."]}

    def test_field_error_does_not_clear_other_values(self, builder: CheckoutIntentBuilder) -> None:
        builder.set_shipping_field("phone", "call me")

        builder.validate_field("phone")

        assert "shipping_address.phone" in builder.errors
        assert builder.shipping_address["first_name"] == "Ada"

    def test_fixing_a_field_clears_its_error(self, builder: CheckoutIntentBuilder) -> None:
        builder.set_shipping_field("city", "")
        builder.validate_field("city")
        builder.set_shipping_field("city", "Lagos")

        assert builder.validate_field("city") == []
        assert builder.errors == {}


class TestSubmit:
    """Tests for submission and the processing latch."""

    @pytest.mark.asyncio
    async def test_invalid_intent_is_not_posted(self, builder: CheckoutIntentBuilder, client: MagicMock) -> None:
        builder.set_shipping_field("first_name", "")

        outcome = await builder.submit(client)

        assert outcome.status == "invalid"
        client.place_order.assert_not_called()
        assert builder.processing is False

    @pytest.mark.asyncio
    async def test_offline_gateway_redirects(self, builder: CheckoutIntentBuilder, client: MagicMock) -> None:
        client.place_order.return_value = CheckoutResponse(
            status="redirect",
            redirect_url="https://shop.example.com/shops/my-shop/checkout/success/ORD-1",
            order=_order(),
        )

        outcome = await builder.submit(client)

        assert outcome.status == "redirect"
        assert outcome.redirect_url.endswith("/success/ORD-1")
        assert builder.processing is False
        payload = client.place_order.call_args.args[0]
        assert payload["payment_reference"] == builder.payment_reference
        assert "billing_address" not in payload

    @pytest.mark.asyncio
    async def test_server_errors_are_shown_even_when_client_passed(
        self, builder: CheckoutIntentBuilder, client: MagicMock
    ) -> None:
        client.place_order.side_effect = CheckoutValidationError(
            "The given data was invalid.",
            422,
            {"shipping_address.state": ["The selected state is invalid."]},
        )

        outcome = await builder.submit(client)

        assert outcome.status == "invalid"
        assert outcome.errors == {"shipping_address.state": ["The selected state is invalid."]}
        assert builder.processing is False

    @pytest.mark.asyncio
    async def test_transport_failure_clears_latch(self, builder: CheckoutIntentBuilder, client: MagicMock) -> None:
        client.place_order.side_effect = StorefrontAPIError("Server Error", 500)

        with pytest.raises(StorefrontAPIError):
            await builder.submit(client)

        assert builder.processing is False

    @pytest.mark.asyncio
    async def test_double_submit_is_blocked(self, builder: CheckoutIntentBuilder, client: MagicMock) -> None:
        builder.processing = True

        with pytest.raises(CheckoutInProgressError):
            await builder.submit(client)

        client.place_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_inline_payment_keeps_latch_until_popup_resolves(
        self, builder: CheckoutIntentBuilder, client: MagicMock
    ) -> None:
        builder.payment_method = "paystack"
        client.place_order.return_value = CheckoutResponse(
            status="payment_required", order=_order(), inline=_inline(builder.payment_reference)
        )

        outcome = await builder.submit(client)

        assert outcome.status == "payment_required"
        assert builder.processing is True

        url = builder.on_inline_success(builder.payment_reference, "T123")
        assert url == (
            "/api/v1/shops/my-shop/payment/callback/paystack"
            f"?reference={builder.payment_reference}&trxref=T123"
        )

    @pytest.mark.asyncio
    async def test_reference_is_stable_across_cancel_and_retry(
        self, builder: CheckoutIntentBuilder, client: MagicMock
    ) -> None:
        builder.payment_method = "paystack"
        reference = builder.payment_reference
        client.place_order.return_value = CheckoutResponse(
            status="payment_required", order=_order(), inline=_inline(reference)
        )

        await builder.submit(client)
        builder.on_inline_close()
        assert builder.processing is False

        await builder.submit(client)

        assert builder.payment_reference == reference
        first, second = (call.args[0] for call in client.place_order.call_args_list)
        assert first["payment_reference"] == second["payment_reference"] == reference
        assert first["idempotency_key"] == second["idempotency_key"]

    def test_inline_success_without_pending_payment_raises(self, builder: CheckoutIntentBuilder) -> None:
        with pytest.raises(RuntimeError, match="No inline payment"):
            builder.on_inline_success("REF")
