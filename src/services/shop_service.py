"""Shop lookup and the shop-specific tax and shipping rules."""

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from src.core.supabase import get_supabase_client
from src.schemas.cart import LineItem
from src.services.pricing import quantize
from src.services.sellable import to_decimal

logger = logging.getLogger(__name__)


class ShopService:
    """Service for storefront-enabled shops."""

    def __init__(self) -> None:
        self.client = get_supabase_client()

    async def get_shop_by_slug(self, slug: str) -> dict[str, Any] | None:
        """Get an active, storefront-enabled shop by slug.

        Args:
            slug: The shop's URL slug.

        Returns:
            dict | None: The shop row or None if missing or not public.
        """
        response = (
            self.client.table("shops")
            .select("*")
            .eq("slug", slug)
            .maybe_single()
            .execute()
        )
        shop = response.data if response and response.data else None
        if not shop:
            return None
        if not shop.get("is_active", True) or not shop.get("storefront_enabled", True):
            logger.info("Shop %s is not open for online orders", slug)
            return None
        return shop


def calculate_shipping(shop: dict[str, Any], product_subtotal: Decimal) -> Decimal:
    """Shipping fee from the shop's storefront settings.

    Only product lines ship, so a service-only cart pays nothing. The fee
    is waived once the product subtotal reaches the free shipping threshold.
    """
    if product_subtotal <= 0:
        return Decimal("0.00")

    settings = shop.get("storefront_settings") or {}
    fee = to_decimal(settings.get("shipping_fee"), Decimal("0"))
    threshold = to_decimal(settings.get("free_shipping_threshold"))

    if threshold is not None and product_subtotal >= threshold:
        return Decimal("0.00")
    return quantize(fee)


def calculate_tax(shop: dict[str, Any], items: Iterable[LineItem]) -> Decimal:
    """VAT over taxable product lines when the shop charges VAT."""
    if not shop.get("vat_enabled"):
        return Decimal("0.00")

    rate = to_decimal(shop.get("vat_rate"), Decimal("0"))
    if rate <= 0:
        return Decimal("0.00")

    taxable = sum(
        (item.subtotal for item in items if item.is_product and item.sellable.is_taxable),
        Decimal("0"),
    )
    return quantize(taxable * rate / 100)
