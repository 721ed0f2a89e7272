"""Checkout and order business logic service."""

import json
import logging
import secrets
from datetime import datetime, timezone
from typing import Any

import stripe

from src.core.config import get_settings
from src.core.paystack import PaystackError
from src.core.stripe import get_stripe
from src.core.supabase import get_supabase_client
from src.models.cart import PRODUCT_VARIANT_TYPE, SERVICE_VARIANT_TYPE
from src.schemas.cart import CartSummary, LineItem, SellableKind
from src.schemas.checkout import (
    CheckoutRequest,
    CheckoutResponse,
    InlinePaymentConfig,
    OrderItemResponse,
    OrderResponse,
)
from src.services.cart_service import CartService
from src.services.payment_gateways import PaymentGatewayManager, get_gateway_manager, to_minor_units
from src.services.pricing import parse_addons

logger = logging.getLogger(__name__)

ORDER_ITEM_KINDS = {
    PRODUCT_VARIANT_TYPE: SellableKind.PRODUCT,
    SERVICE_VARIANT_TYPE: SellableKind.SERVICE,
}
DEFAULT_ITEM_NAMES = {
    SellableKind.PRODUCT: "Product",
    SellableKind.SERVICE: "Service",
    SellableKind.UNKNOWN: "Item",
}


class InsufficientStockError(ValueError):
    """A product line asks for more units than the shop holds."""

    def __init__(self, product_name: str, available: int, requested: int) -> None:
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock for {product_name}. Only {available} available.")


class CheckoutFieldError(ValueError):
    """A checkout intent field the server rejects."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class CheckoutService:
    """Service for placing orders from carts and confirming their payment."""

    def __init__(
        self,
        cart_service: CartService | None = None,
        gateways: PaymentGatewayManager | None = None,
    ) -> None:
        self.client = get_supabase_client()
        self.settings = get_settings()
        self.stripe = get_stripe()
        self.cart_service = cart_service or CartService()
        self.gateways = gateways or get_gateway_manager()

    def _shop_url(self, shop: dict[str, Any], path: str) -> str:
        return f"{self.settings.frontend_url.rstrip('/')}/shops/{shop['slug']}{path}"

    def success_url(self, shop: dict[str, Any], order: dict[str, Any]) -> str:
        return self._shop_url(shop, f"/checkout/success/{order['order_number']}")

    def pending_url(self, shop: dict[str, Any], order: dict[str, Any]) -> str:
        return self._shop_url(shop, f"/checkout/pending/{order['order_number']}")

    def storefront_url(self, shop: dict[str, Any]) -> str:
        return self._shop_url(shop, "")

    def callback_url(self, shop: dict[str, Any], gateway: str) -> str:
        return f"/api/v1/shops/{shop['slug']}/payment/callback/{gateway}"

    @staticmethod
    def generate_order_number() -> str:
        date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
        return f"ORD-{date_part}-{secrets.token_hex(3).upper()}"

    async def get_checkout(self, shop: dict[str, Any], cart: dict[str, Any]) -> dict[str, Any]:
        """Data for the checkout page.

        Raises:
            ValueError: If the cart is empty.
        """
        summary = await self.cart_service.get_cart_summary(shop, cart)
        if summary.item_count == 0:
            raise ValueError("Your cart is empty")

        currency = shop.get("currency") or self.settings.default_currency
        return {
            "summary": summary,
            "payment_reference": await self.cart_service.ensure_checkout_reference(shop, cart),
            "gateways": self.gateways.storefront_gateways(currency),
        }

    async def find_existing_order(
        self,
        shop: dict[str, Any],
        cart: dict[str, Any],
        idempotency_key: str | None = None,
        payment_reference: str | None = None,
        customer_id: int | None = None,
    ) -> dict[str, Any] | None:
        """Find an order this shopper already placed with the same idempotency key or payment reference.

        Offline orders delete their cart, so a retried submission arrives on a
        fresh cart row. Orders are matched on the shopper (customer or guest
        token) instead of the cart id.
        """
        owner_column, owner_value = self._order_owner(cart, customer_id)
        for column, value in (("idempotency_key", idempotency_key), ("payment_reference", payment_reference)):
            if not value:
                continue
            response = (
                self.client.table("orders")
                .select("*")
                .eq("shop_id", shop["id"])
                .eq(owner_column, owner_value)
                .eq(column, value)
                .maybe_single()
                .execute()
            )
            if response and response.data:
                return response.data
        return None

    @staticmethod
    def _order_owner(cart: dict[str, Any], customer_id: int | None = None) -> tuple[str, Any]:
        customer_id = customer_id or cart.get("customer_id")
        if customer_id:
            return "customer_id", customer_id
        if cart.get("cart_token"):
            return "cart_token", cart["cart_token"]
        return "cart_id", cart["id"]

    def _check_stock(self, summary: CartSummary) -> None:
        for item in summary.items:
            if item.is_product and item.sellable.available_stock < item.quantity:
                raise InsufficientStockError(
                    item.display_name, item.sellable.available_stock, item.quantity
                )

    def _order_item_row(self, order_id: int, tenant_id: Any, item: LineItem) -> dict[str, Any]:
        sellable = item.sellable
        row: dict[str, Any] = {
            "order_id": order_id,
            "tenant_id": tenant_id,
            "name": item.display_name,
            "variant_label": sellable.variant_label,
            "quantity": item.quantity,
            "unit_price": str(item.unit_price),
            "total_amount": str(item.subtotal),
        }
        if item.kind == SellableKind.PRODUCT:
            row.update(
                {
                    "sellable_type": PRODUCT_VARIANT_TYPE,
                    "sellable_id": sellable.variant_id,
                    "product_variant_id": sellable.variant_id,
                    "product_packaging_type_id": item.packaging_type_id,
                    "metadata": {"packaging_name": item.packaging_name} if item.packaging_name else None,
                }
            )
        elif item.kind == SellableKind.SERVICE:
            metadata: dict[str, Any] = {}
            if item.material_option:
                metadata["material_option"] = item.material_option.value
            if item.selected_addons:
                metadata["selected_addons"] = [addon.model_dump(mode="json") for addon in item.selected_addons]
            row.update(
                {
                    "sellable_type": SERVICE_VARIANT_TYPE,
                    "sellable_id": sellable.variant_id,
                    "metadata": metadata or None,
                }
            )
        else:
            row.update({"sellable_type": None, "sellable_id": None, "metadata": None})
        return row

    async def create_order_from_cart(
        self,
        shop: dict[str, Any],
        cart: dict[str, Any],
        request: CheckoutRequest,
        customer_id: int | None = None,
    ) -> dict[str, Any]:
        """Create an order and its item snapshots from the current cart.

        Offline gateways empty the cart as soon as the order exists. Inline
        gateways keep it until the payment is verified, so a failed or
        abandoned popup leaves the cart intact.

        Raises:
            CheckoutFieldError: If billing is missing or the payment method is unavailable.
            ValueError: If the cart is empty.
            InsufficientStockError: If a product line exceeds available stock.
        """
        gateway = self.gateways.gateway(request.payment_method) if self.gateways.has(request.payment_method) else None
        if gateway is None or not gateway.is_available():
            raise CheckoutFieldError("payment_method", "The selected payment method is not available.")

        billing_address = request.resolved_billing_address()
        if billing_address is None:
            raise CheckoutFieldError("billing_address", "The billing address field is required.")

        summary = await self.cart_service.get_cart_summary(shop, cart)
        if not summary.items:
            raise ValueError("Cannot checkout with empty cart")
        self._check_stock(summary)

        payment_reference = (
            request.payment_reference
            or cart.get("checkout_reference")
            or await self.cart_service.ensure_checkout_reference(shop, cart)
        )

        order_data = {
            "tenant_id": shop.get("tenant_id"),
            "shop_id": shop["id"],
            "cart_id": cart["id"],
            "customer_id": customer_id,
            "cart_token": cart.get("cart_token"),
            "order_number": self.generate_order_number(),
            "status": "pending",
            "payment_status": "unpaid",
            "payment_method": request.payment_method,
            "payment_reference": payment_reference,
            "idempotency_key": request.idempotency_key,
            "currency": shop.get("currency") or self.settings.default_currency,
            "subtotal": str(summary.subtotal),
            "tax_amount": str(summary.tax),
            "shipping_cost": str(summary.shipping_fee),
            "total_amount": str(summary.total),
            "shipping_address": json.dumps(request.shipping_address.model_dump()),
            "billing_address": json.dumps(billing_address.model_dump()),
            "customer_notes": request.customer_notes,
            "customer_email": request.customer_email,
        }
        order = self.client.table("orders").insert(order_data).execute().data[0]

        item_rows = [self._order_item_row(order["id"], shop.get("tenant_id"), item) for item in summary.items]
        self.client.table("order_items").insert(item_rows).execute()

        if request.save_addresses and customer_id:
            self._save_address(customer_id, request.shipping_address.model_dump(), "shipping")
            if not request.billing_same_as_shipping:
                self._save_address(customer_id, billing_address.model_dump(), "billing")

        if not gateway.supports_inline:
            await self.cart_service.clear_cart(cart, delete_cart=True)

        logger.info(
            "Order %s created from cart %s",
            order["order_number"],
            cart["id"],
            extra={"payment_method": request.payment_method, "total": str(summary.total)},
        )
        return order

    def _save_address(self, customer_id: int, address: dict[str, Any], address_type: str) -> None:
        existing = (
            self.client.table("customer_addresses")
            .select("id")
            .eq("customer_id", customer_id)
            .eq("type", address_type)
            .execute()
        )
        self.client.table("customer_addresses").insert(
            {**address, "customer_id": customer_id, "type": address_type, "is_default": not existing.data}
        ).execute()

    async def place_order(
        self,
        shop: dict[str, Any],
        cart: dict[str, Any],
        request: CheckoutRequest,
        customer_id: int | None = None,
    ) -> CheckoutResponse:
        """Place an order, or return the one already placed with the same key."""
        order = await self.find_existing_order(
            shop, cart, request.idempotency_key, request.payment_reference, customer_id
        )
        if order:
            logger.info("Reusing order %s for idempotency key", order["order_number"])
        else:
            order = await self.create_order_from_cart(shop, cart, request, customer_id)

        order_response = await self.build_order_response(order)
        gateway = self.gateways.gateway(order["payment_method"])

        if gateway.supports_inline and order.get("payment_status") != "paid":
            currency = order.get("currency") or shop.get("currency") or self.settings.default_currency
            amount_minor = to_minor_units(order_response.total_amount, currency)
            extras = gateway.prepare_inline(order, amount_minor, currency)
            return CheckoutResponse(
                status="payment_required",
                order=order_response,
                inline=InlinePaymentConfig(
                    gateway=gateway.identifier,
                    public_key=gateway.public_key(),
                    reference=order["payment_reference"],
                    amount_minor=amount_minor,
                    currency=currency,
                    email=order.get("customer_email"),
                    callback_url=self.callback_url(shop, gateway.identifier),
                    **extras,
                ),
            )

        return CheckoutResponse(status="redirect", redirect_url=self.success_url(shop, order), order=order_response)

    async def get_order_by_reference(self, shop: dict[str, Any], reference: str) -> dict[str, Any] | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("payment_reference", reference)
            .eq("shop_id", shop["id"])
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def verify_payment(
        self,
        shop: dict[str, Any],
        gateway_id: str,
        reference: str,
        transaction_id: str | None = None,
    ) -> dict[str, Any] | None:
        """Ask the provider about a reference and mark the order paid if it is.

        Provider errors are logged and the order is returned unchanged; they
        are never retried here.

        Returns:
            dict | None: The (possibly updated) order, or None if no order has this reference.
        """
        order = await self.get_order_by_reference(shop, reference)
        if not order:
            logger.warning("Order not found for payment reference", extra={"reference": reference})
            return None

        if order.get("payment_status") == "paid":
            return order

        gateway = self.gateways.gateway(gateway_id)
        if not gateway.supports_inline or gateway_id != order.get("payment_method"):
            logger.warning(
                "Ignoring %s callback for order %s paid by %s",
                gateway_id,
                order["order_number"],
                order.get("payment_method"),
            )
            return order

        try:
            verification = await gateway.verify_payment(reference, transaction_id)
        except (PaystackError, stripe.StripeError, ValueError) as e:
            logger.error("Payment verification failed for %s: %s", reference, str(e))
            return order

        if not verification.paid:
            logger.info("Payment %s not confirmed: %s", reference, verification.message)
            return order

        updated = await self.mark_order_paid(reference, verification.transaction_id)
        return updated or order

    async def mark_order_paid(self, reference: str, transaction_id: str | None = None) -> dict[str, Any] | None:
        """Confirm an order, record the payment and empty the cart it came from."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("payment_reference", reference)
            .maybe_single()
            .execute()
        )
        order = response.data if response and response.data else None
        if not order:
            logger.warning("Order not found for payment update", extra={"reference": reference})
            return None
        if order.get("payment_status") == "paid":
            return order

        now = datetime.now(timezone.utc).isoformat()
        updated = (
            self.client.table("orders")
            .update({"payment_status": "paid", "status": "confirmed", "confirmed_at": now})
            .eq("id", order["id"])
            .execute()
        )
        self.client.table("order_payments").insert(
            {
                "tenant_id": order.get("tenant_id"),
                "order_id": order["id"],
                "amount": order["total_amount"],
                "payment_method": order["payment_method"],
                "reference_number": transaction_id or reference,
                "status": "completed",
                "paid_at": now,
            }
        ).execute()

        if order.get("cart_id"):
            await self.cart_service.clear_cart({"id": order["cart_id"]}, delete_cart=True)

        logger.info(
            "Order %s marked as paid",
            order["order_number"],
            extra={"transaction_id": transaction_id},
        )
        return updated.data[0] if updated.data else order

    async def handle_paystack_event(self, event: dict[str, Any]) -> None:
        """Process a verified Paystack webhook event."""
        if event.get("event") != "charge.success":
            logger.debug("Unhandled Paystack event: %s", event.get("event"))
            return
        data = event.get("data") or {}
        reference = data.get("reference")
        if reference:
            await self.mark_order_paid(reference, str(data["id"]) if data.get("id") else None)

    async def handle_stripe_event(self, event: dict[str, Any]) -> None:
        """Process a verified Stripe webhook event."""
        if event.get("type") != "payment_intent.succeeded":
            logger.debug("Unhandled Stripe event: %s", event.get("type"))
            return
        intent = event["data"]["object"]
        reference = (intent.get("metadata") or {}).get("payment_reference")
        if reference:
            await self.mark_order_paid(reference, intent.get("id"))

    def verify_stripe_signature(self, payload: bytes, sig_header: str) -> dict[str, Any]:
        """Verify Stripe webhook signature and return event.

        Raises:
            ValueError: If signature is invalid or Stripe not configured.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValueError("Stripe webhook secret is not configured.")
        try:
            return self.stripe.Webhook.construct_event(payload, sig_header, self.settings.stripe_webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValueError("Invalid webhook signature") from e

    async def get_order(self, shop: dict[str, Any], order_number: str) -> dict[str, Any] | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("shop_id", shop["id"])
            .eq("order_number", order_number)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def can_access_order(
        self,
        order: dict[str, Any],
        customer_id: int | None = None,
        cart_token: str | None = None,
    ) -> bool:
        """Check if a customer or guest cart token owns an order."""
        if customer_id and order.get("customer_id") == customer_id:
            return True
        if cart_token and order.get("cart_token") == cart_token:
            return True
        return False

    async def build_order_response(self, order: dict[str, Any]) -> OrderResponse:
        response = (
            self.client.table("order_items")
            .select("*")
            .eq("order_id", order["id"])
            .order("id")
            .execute()
        )
        items = []
        for row in response.data or []:
            metadata = row.get("metadata") or {}
            if isinstance(metadata, str):
                metadata = json.loads(metadata)
            kind = ORDER_ITEM_KINDS.get(row.get("sellable_type"), SellableKind.UNKNOWN)
            items.append(
                OrderItemResponse(
                    id=row["id"],
                    kind=kind,
                    name=row.get("name") or DEFAULT_ITEM_NAMES[kind],
                    variant_label=row.get("variant_label"),
                    quantity=row["quantity"],
                    unit_price=row["unit_price"],
                    total_amount=row["total_amount"],
                    packaging_name=metadata.get("packaging_name"),
                    material_option=metadata.get("material_option"),
                    selected_addons=list(parse_addons(metadata.get("selected_addons"))),
                )
            )
        return OrderResponse.model_validate({**order, "items": items})
