"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict

OrderStatus = Literal["pending", "confirmed", "processing", "completed", "cancelled"]
PaymentStatus = Literal["unpaid", "paid", "failed", "refunded"]


class OrderItem(TypedDict, total=False):
    """Immutable order_items snapshot of a cart line."""

    id: int
    order_id: int
    tenant_id: int
    sellable_type: str
    sellable_id: int
    product_variant_id: int | None
    product_packaging_type_id: int | None
    name: str
    variant_label: str | None
    quantity: int
    unit_price: float
    total_amount: float
    metadata: dict | None


class Order(TypedDict):
    """Order table row representation.

    shipping_address and billing_address are stored JSON-encoded.
    """

    id: int
    tenant_id: int
    shop_id: int
    cart_id: int | None
    customer_id: int | None
    cart_token: str | None
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: str
    payment_reference: str | None
    idempotency_key: str | None
    currency: str
    subtotal: float
    tax_amount: float
    shipping_cost: float
    total_amount: float
    shipping_address: str
    billing_address: str
    customer_notes: str | None
    customer_email: str | None
    confirmed_at: datetime | None
    created_at: datetime


class OrderUpdate(TypedDict, total=False):
    """Data that can be updated on an order after payment events."""

    status: OrderStatus
    payment_status: PaymentStatus
    transaction_id: str
    confirmed_at: str
