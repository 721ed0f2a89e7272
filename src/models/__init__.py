"""Database model type definitions."""

from src.models.cart import PRODUCT_VARIANT_TYPE, SERVICE_VARIANT_TYPE, Cart, CartItem, SelectedAddonRow
from src.models.order import Order, OrderItem, OrderStatus, OrderUpdate, PaymentStatus
from src.models.shop import Shop, StorefrontSettings

__all__ = [
    "PRODUCT_VARIANT_TYPE",
    "SERVICE_VARIANT_TYPE",
    "Cart",
    "CartItem",
    "SelectedAddonRow",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderUpdate",
    "PaymentStatus",
    "Shop",
    "StorefrontSettings",
]
