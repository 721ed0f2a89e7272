"""Cart business logic service."""

import logging
import secrets
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.models.cart import PRODUCT_VARIANT_TYPE, SERVICE_VARIANT_TYPE
from src.schemas.cart import (
    UNLIMITED_STOCK,
    AddonSelectionInput,
    CartSummary,
    LineItem,
    MaterialOption,
    SellableKind,
)
from src.services.cart_summary import fold_cart
from src.services.payment_reference import generate_payment_reference
from src.services.pricing import base_price_for_material_option, build_line_item, quantize
from src.services.sellable import detect_kind, resolve_sellable, to_decimal
from src.services.shop_service import calculate_shipping, calculate_tax

logger = logging.getLogger(__name__)

# PostgREST embed that loads everything a line item needs in one query
CART_ITEM_SELECT = (
    "*, "
    "product_variant:product_variants(*, product:products(*)), "
    "packaging_type:product_packaging_types(id, name), "
    "sellable:service_variants(*, service:services(*))"
)

# Carts without lines are dropped once they have been idle this long
EMPTY_CART_IDLE_DAYS = 7


def _parse_timestamp(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def is_cart_expired(cart: dict[str, Any], now: datetime | None = None) -> bool:
    """True when the cart's expires_at has passed. Carts without one never expire."""
    expires_at = cart.get("expires_at")
    if not expires_at:
        return False
    return _parse_timestamp(expires_at) <= (now or datetime.now(timezone.utc))


class CartService:
    """Service for storefront carts.

    The database is the single writer of cart state: every mutation writes
    through and callers re-read the whole cart afterwards.
    """

    TOKEN_LENGTH = 48

    def __init__(self) -> None:
        self.client = get_supabase_client()
        self.settings = get_settings()

    def generate_cart_token(self) -> str:
        return secrets.token_hex(self.TOKEN_LENGTH // 2)

    def _touch(self, cart: dict[str, Any]) -> None:
        self.client.table("carts").update(
            {"updated_at": datetime.now(timezone.utc).isoformat()}
        ).eq("id", cart["id"]).execute()

    async def get_cart(
        self,
        shop: dict[str, Any],
        cart_token: str | None = None,
        customer_id: int | None = None,
    ) -> dict[str, Any]:
        """Get or create the cart for a customer or guest token.

        Args:
            shop: The shop row.
            cart_token: Guest cart token (from header or cookie).
            customer_id: Customer ID when the shopper is signed in.

        Returns:
            dict: The cart row.

        Raises:
            ValueError: If neither a customer nor a cart token is given.
        """
        query = self.client.table("carts").select("*").eq("shop_id", shop["id"])
        if customer_id:
            query = query.eq("customer_id", customer_id)
        elif cart_token:
            query = query.eq("cart_token", cart_token)
        else:
            raise ValueError("A cart token or customer is required")

        response = query.maybe_single().execute()
        existing = response.data if response and response.data else None
        if existing and not is_cart_expired(existing):
            return existing
        if existing:
            logger.info("Cart %s expired; starting a new one", existing["id"])
            await self.clear_cart(existing, delete_cart=True)

        expiry_days = (
            self.settings.customer_cart_expiry_days if customer_id else self.settings.guest_cart_expiry_days
        )
        cart_data = {
            "tenant_id": shop.get("tenant_id"),
            "shop_id": shop["id"],
            "customer_id": customer_id,
            "cart_token": None if customer_id else cart_token,
            "expires_at": (datetime.now(timezone.utc) + timedelta(days=expiry_days)).isoformat(),
        }
        created = self.client.table("carts").insert(cart_data).execute()
        logger.info("Created cart for shop %s", shop["id"], extra={"customer_id": customer_id})
        return created.data[0]

    async def get_cart_item(self, cart: dict[str, Any], item_id: int) -> dict[str, Any]:
        """Get a cart_items row that must belong to the given cart.

        Raises:
            LookupError: If the item does not exist.
            PermissionError: If the item belongs to another cart.
        """
        response = (
            self.client.table("cart_items")
            .select(CART_ITEM_SELECT)
            .eq("id", item_id)
            .maybe_single()
            .execute()
        )
        row = response.data if response and response.data else None
        if not row:
            raise LookupError("Cart item not found")
        if row["cart_id"] != cart["id"]:
            raise PermissionError("Cart item does not belong to this cart")
        return row

    async def get_item_rows(self, cart: dict[str, Any]) -> list[dict[str, Any]]:
        response = (
            self.client.table("cart_items")
            .select(CART_ITEM_SELECT)
            .eq("cart_id", cart["id"])
            .order("id")
            .execute()
        )
        return response.data or []

    async def get_line_items(self, cart: dict[str, Any]) -> list[LineItem]:
        return [build_line_item(row) for row in await self.get_item_rows(cart)]

    def _product_limit(self, variant: dict[str, Any]) -> int:
        """Highest quantity a single cart line may hold for a product variant."""
        product = variant.get("product") or {}
        limit = UNLIMITED_STOCK
        if product.get("track_stock", True) and variant.get("available_stock") is not None:
            limit = max(int(variant["available_stock"]), 0)
        if variant.get("max_order_quantity"):
            limit = min(limit, int(variant["max_order_quantity"]))
        return limit

    async def _get_product_variant(self, variant_id: int) -> dict[str, Any]:
        response = (
            self.client.table("product_variants")
            .select("*, product:products(*)")
            .eq("id", variant_id)
            .maybe_single()
            .execute()
        )
        variant = response.data if response and response.data else None
        if not variant:
            raise LookupError("Product variant not found")
        if not variant.get("is_available_online", True):
            raise ValueError("This product is not available for online purchase.")
        return variant

    async def add_item(
        self,
        cart: dict[str, Any],
        variant_id: int,
        quantity: int = 1,
        packaging_type_id: int | None = None,
    ) -> dict[str, Any]:
        """Add a product variant, merging into an existing line with the same packaging.

        Quantities beyond what is available are clamped and reported as a warning.

        Returns:
            dict: status, item_id and an optional warning.
        """
        variant = await self._get_product_variant(variant_id)
        limit = self._product_limit(variant)
        if limit < 1:
            raise ValueError("This product is out of stock.")

        query = (
            self.client.table("cart_items")
            .select("*")
            .eq("cart_id", cart["id"])
            .eq("product_variant_id", variant_id)
        )
        if packaging_type_id is None:
            query = query.is_("product_packaging_type_id", "null")
        else:
            query = query.eq("product_packaging_type_id", packaging_type_id)
        existing_response = query.maybe_single().execute()
        existing = existing_response.data if existing_response and existing_response.data else None

        requested = quantity + (existing["quantity"] if existing else 0)
        final_quantity = min(max(requested, 1), limit)
        warning = f"Only {limit} available" if final_quantity < requested else None

        if existing:
            self.client.table("cart_items").update({"quantity": final_quantity}).eq("id", existing["id"]).execute()
            item_id = existing["id"]
        else:
            created = (
                self.client.table("cart_items")
                .insert(
                    {
                        "cart_id": cart["id"],
                        "tenant_id": cart.get("tenant_id"),
                        "sellable_type": PRODUCT_VARIANT_TYPE,
                        "sellable_id": variant_id,
                        "product_variant_id": variant_id,
                        "product_packaging_type_id": packaging_type_id,
                        "quantity": final_quantity,
                        "price": str(quantize(to_decimal(variant.get("price"), Decimal("0")))),
                    }
                )
                .execute()
            )
            item_id = created.data[0]["id"]

        self._touch(cart)
        return {"status": "added", "item_id": item_id, "warning": warning}

    async def _get_addons(self, ids: Sequence[int]) -> dict[int, dict[str, Any]]:
        if not ids:
            return {}
        response = self.client.table("service_addons").select("*").in_("id", list(ids)).execute()
        addons = {int(row["id"]): row for row in response.data or []}
        missing = set(ids) - set(addons)
        if missing:
            raise LookupError(f"Add-on(s) not found: {sorted(missing)}")
        return addons

    async def add_service_item(
        self,
        cart: dict[str, Any],
        service_variant_id: int,
        quantity: int = 1,
        material_option: MaterialOption | None = None,
        selected_addons: Sequence[AddonSelectionInput] = (),
    ) -> dict[str, Any]:
        """Add a service variant with its material tier and add-on snapshot.

        Service lines are never merged, since two bookings of the same
        variant may carry different add-ons.

        Raises:
            LookupError: If the variant or an add-on does not exist.
            ValueError: If the service is not bookable online.
        """
        response = (
            self.client.table("service_variants")
            .select("*, service:services(*)")
            .eq("id", service_variant_id)
            .maybe_single()
            .execute()
        )
        variant = response.data if response and response.data else None
        if not variant:
            raise LookupError("Service variant not found")

        service = variant.get("service") or {}
        if not service.get("is_available_online", False) or not variant.get("is_active", False):
            raise ValueError("This service is not available for online booking.")

        sellable = resolve_sellable({"sellable_type": SERVICE_VARIANT_TYPE, "sellable": variant})
        unit_price = quantize(base_price_for_material_option(sellable, material_option))

        addon_rows = await self._get_addons([entry.addon_id for entry in selected_addons])
        snapshot = []
        for entry in selected_addons:
            addon = addon_rows[entry.addon_id]
            qty = entry.quantity
            if addon.get("max_quantity"):
                qty = min(qty, int(addon["max_quantity"]))
            snapshot.append(
                {
                    "addon_id": entry.addon_id,
                    "name": addon.get("name") or "",
                    "quantity": qty,
                    "unit_price": str(quantize(to_decimal(addon.get("price"), Decimal("0")))),
                }
            )

        created = (
            self.client.table("cart_items")
            .insert(
                {
                    "cart_id": cart["id"],
                    "tenant_id": cart.get("tenant_id"),
                    "sellable_type": SERVICE_VARIANT_TYPE,
                    "sellable_id": service_variant_id,
                    "quantity": max(quantity, 1),
                    "price": str(unit_price),
                    "base_price": str(unit_price),
                    "material_option": material_option.value if material_option else None,
                    "selected_addons": snapshot,
                }
            )
            .execute()
        )
        self._touch(cart)
        return {"status": "added", "item_id": created.data[0]["id"], "warning": None}

    async def update_quantity(self, cart: dict[str, Any], item_id: int, quantity: int) -> dict[str, Any]:
        """Set a line's quantity; zero or less removes the line.

        Product quantities clamp to the variant's available stock.
        """
        row = await self.get_cart_item(cart, item_id)

        if quantity <= 0:
            await self.remove_item(cart, item_id)
            return {"status": "removed", "item_id": None, "warning": None}

        warning = None
        final_quantity = quantity
        if detect_kind(row) == SellableKind.PRODUCT:
            limit = self._product_limit(row.get("product_variant") or {})
            final_quantity = max(min(quantity, limit), 1)
            if final_quantity < quantity:
                warning = f"Only {limit} available"

        self.client.table("cart_items").update({"quantity": final_quantity}).eq("id", item_id).execute()
        self._touch(cart)
        return {"status": "updated", "item_id": item_id, "warning": warning}

    async def remove_item(self, cart: dict[str, Any], item_id: int) -> None:
        await self.get_cart_item(cart, item_id)
        self.client.table("cart_items").delete().eq("id", item_id).execute()
        self._touch(cart)

    async def clear_cart(self, cart: dict[str, Any], delete_cart: bool = False) -> None:
        """Remove every line; optionally drop the cart row itself."""
        self.client.table("cart_items").delete().eq("cart_id", cart["id"]).execute()
        if delete_cart:
            self.client.table("carts").delete().eq("id", cart["id"]).execute()
        else:
            self.client.table("carts").update({"checkout_reference": None}).eq("id", cart["id"]).execute()
        logger.info("Cleared cart %s", cart["id"])

    async def get_cart_summary(self, shop: dict[str, Any], cart: dict[str, Any]) -> CartSummary:
        """Load all lines and fold them with the shop's tax and shipping."""
        items = await self.get_line_items(cart)
        product_subtotal = sum((item.subtotal for item in items if item.is_product), Decimal("0"))
        return fold_cart(
            items,
            tax=calculate_tax(shop, items),
            shipping_fee=calculate_shipping(shop, product_subtotal),
        )

    async def ensure_checkout_reference(self, shop: dict[str, Any], cart: dict[str, Any]) -> str:
        """Return the cart's checkout reference, generating it on first use.

        The reference is reused until the cart is cleared, so reloading
        the checkout page never changes it.
        """
        if cart.get("checkout_reference"):
            return cart["checkout_reference"]

        reference = generate_payment_reference(shop["slug"])
        self.client.table("carts").update({"checkout_reference": reference}).eq("id", cart["id"]).execute()
        cart["checkout_reference"] = reference
        return reference

    async def merge_guest_cart(self, shop: dict[str, Any], cart_token: str, customer_id: int) -> dict[str, Any]:
        """Move a guest cart's lines into the customer's cart.

        Product lines with the same variant and packaging are summed;
        everything else is re-parented as is. The guest cart is deleted.
        """
        customer_cart = await self.get_cart(shop, customer_id=customer_id)
        response = (
            self.client.table("carts")
            .select("*")
            .eq("shop_id", shop["id"])
            .eq("cart_token", cart_token)
            .maybe_single()
            .execute()
        )
        guest_cart = response.data if response and response.data else None
        if not guest_cart or guest_cart["id"] == customer_cart["id"]:
            return customer_cart

        customer_rows = await self.get_item_rows(customer_cart)
        by_key = {
            (row.get("product_variant_id"), row.get("product_packaging_type_id")): row
            for row in customer_rows
            if row.get("product_variant_id")
        }

        for guest_row in await self.get_item_rows(guest_cart):
            key = (guest_row.get("product_variant_id"), guest_row.get("product_packaging_type_id"))
            match = by_key.get(key) if guest_row.get("product_variant_id") else None
            if match:
                self.client.table("cart_items").update(
                    {"quantity": match["quantity"] + guest_row["quantity"]}
                ).eq("id", match["id"]).execute()
                self.client.table("cart_items").delete().eq("id", guest_row["id"]).execute()
            else:
                self.client.table("cart_items").update({"cart_id": customer_cart["id"]}).eq(
                    "id", guest_row["id"]
                ).execute()

        self.client.table("carts").delete().eq("id", guest_cart["id"]).execute()
        self._touch(customer_cart)
        logger.info("Merged guest cart %s into cart %s", guest_cart["id"], customer_cart["id"])
        return customer_cart

    def _delete_carts(self, cart_ids: Sequence[int]) -> None:
        self.client.table("cart_items").delete().in_("cart_id", list(cart_ids)).execute()
        self.client.table("carts").delete().in_("id", list(cart_ids)).execute()

    async def cleanup_expired_carts(self, guest_days: int = 30, dry_run: bool = False) -> dict[str, int]:
        """Delete carts nobody will come back to.

        Three groups are removed, each counted once:
        carts past their expires_at, guest carts idle for `guest_days`,
        and carts with no lines idle for EMPTY_CART_IDLE_DAYS.

        Args:
            guest_days: Idle days after which a guest cart is dropped.
            dry_run: Count only; delete nothing.

        Returns:
            dict: Number of carts per group.
        """
        now = datetime.now(timezone.utc)
        guest_cutoff = (now - timedelta(days=guest_days)).isoformat()
        empty_cutoff = (now - timedelta(days=EMPTY_CART_IDLE_DAYS)).isoformat()

        expired = self.client.table("carts").select("id").lte("expires_at", now.isoformat()).execute()
        old_guest = (
            self.client.table("carts")
            .select("id")
            .is_("customer_id", "null")
            .lte("updated_at", guest_cutoff)
            .execute()
        )
        idle = (
            self.client.table("carts")
            .select("id, items:cart_items(id)")
            .lte("updated_at", empty_cutoff)
            .execute()
        )

        seen: set[int] = set()
        groups: dict[str, list[int]] = {}
        for name, rows in (
            ("expired", expired.data or []),
            ("old_guest", old_guest.data or []),
            ("empty", [row for row in idle.data or [] if not row.get("items")]),
        ):
            ids = [row["id"] for row in rows if row["id"] not in seen]
            seen.update(ids)
            groups[name] = ids

        for name, ids in groups.items():
            if not ids:
                continue
            if dry_run:
                logger.info("[DRY RUN] Would delete %s %s cart(s)", len(ids), name)
            else:
                self._delete_carts(ids)
                logger.info("Deleted %s %s cart(s)", len(ids), name)

        return {name: len(ids) for name, ids in groups.items()}
