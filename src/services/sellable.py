"""Normalize raw cart/order rows into a single sellable reference."""

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from src.models.cart import PRODUCT_VARIANT_TYPE, SERVICE_VARIANT_TYPE
from src.schemas.cart import (
    UNLIMITED_STOCK,
    GenericSellable,
    ProductSellable,
    SellableKind,
    ServiceSellable,
)

# Type tags written by older rows use the fully-qualified backend model names
PRODUCT_TYPE_TAGS = frozenset({PRODUCT_VARIANT_TYPE, "App\\Models\\ProductVariant"})
SERVICE_TYPE_TAGS = frozenset({SERVICE_VARIANT_TYPE, "App\\Models\\ServiceVariant"})


def to_decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    """Convert a JSON number/string to Decimal, returning default when empty or invalid."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def detect_kind(raw: Mapping[str, Any]) -> SellableKind:
    """Decide what a row sells from its type tag or product variant key.

    Both signals are checked for products, since rows written before the
    polymorphic columns existed only carry product_variant_id.
    """
    type_tag = raw.get("sellable_type")
    if type_tag in PRODUCT_TYPE_TAGS or raw.get("product_variant_id"):
        return SellableKind.PRODUCT
    if type_tag in SERVICE_TYPE_TAGS:
        return SellableKind.SERVICE
    return SellableKind.UNKNOWN


def _product_from(raw: Mapping[str, Any]) -> ProductSellable:
    variant = raw.get("product_variant") or {}
    product = variant.get("product") or {}
    stock = variant.get("available_stock")
    return ProductSellable(
        variant_id=variant.get("id") or raw.get("product_variant_id") or raw.get("sellable_id"),
        sku=variant.get("sku"),
        product_name=product.get("name") or "Product",
        image_url=variant.get("image_url") or product.get("image_url"),
        available_stock=max(int(stock), 0) if stock is not None else UNLIMITED_STOCK,
        is_taxable=bool(product.get("is_taxable", False)),
    )


def _service_from(raw: Mapping[str, Any]) -> ServiceSellable:
    variant = raw.get("sellable") or {}
    service = variant.get("service") or {}
    return ServiceSellable(
        variant_id=variant.get("id") or raw.get("sellable_id"),
        service_name=service.get("name") or "Service",
        variant_label=variant.get("name"),
        image_url=variant.get("image_url") or service.get("image_url"),
        base_price=to_decimal(variant.get("base_price"), to_decimal(raw.get("base_price"), Decimal("0"))),
        estimated_duration_minutes=variant.get("estimated_duration_minutes")
        or variant.get("duration_minutes"),
        has_material_options=bool(service.get("has_material_options", False)),
        customer_materials_price=to_decimal(variant.get("customer_materials_price")),
        shop_materials_price=to_decimal(variant.get("shop_materials_price")),
    )


def resolve_sellable(raw: Mapping[str, Any]) -> ProductSellable | ServiceSellable | GenericSellable:
    """Produce the normalized sellable for a cart_items or order_items row.

    Never raises on missing nested data: absent objects resolve to the
    "Product", "Service" or "Item" placeholders so that a row can always
    be rendered.

    Args:
        raw: Row with `sellable_type`, `product_variant_id` and the optional
            `product_variant` / `sellable` embeds.

    Returns:
        The sellable reference for the row.
    """
    kind = detect_kind(raw)
    if kind == SellableKind.PRODUCT:
        return _product_from(raw)
    if kind == SellableKind.SERVICE:
        return _service_from(raw)
    return GenericSellable(name=raw.get("name") or "Item")
