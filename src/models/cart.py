"""Cart model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict

# Type tags stored in cart_items.sellable_type / order_items.sellable_type
PRODUCT_VARIANT_TYPE = "product_variant"
SERVICE_VARIANT_TYPE = "service_variant"


class SelectedAddonRow(TypedDict):
    """One add-on snapshot inside the selected_addons JSONB array."""

    addon_id: int
    name: str
    quantity: int
    unit_price: float


class Cart(TypedDict):
    """Cart table row representation.

    A cart belongs either to a guest (cart_token) or to a customer.
    """

    id: int
    tenant_id: int
    shop_id: int
    customer_id: int | None
    cart_token: str | None
    checkout_reference: str | None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class CartItem(TypedDict, total=False):
    """cart_items row, optionally with embedded sellable resources.

    `product_variant` and `sellable` are PostgREST embeds and only
    present when the query asked for them.
    """

    id: int
    cart_id: int
    tenant_id: int
    sellable_type: str
    sellable_id: int
    product_variant_id: int | None
    product_packaging_type_id: int | None
    quantity: int
    price: float
    base_price: float | None
    material_option: str | None
    selected_addons: list[SelectedAddonRow] | str | None
    product_variant: dict | None
    packaging_type: dict | None
    sellable: dict | None
