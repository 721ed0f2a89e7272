"""Checkout and order Pydantic schemas for API request/response models."""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.schemas.cart import CartSummary, MaterialOption, SelectedAddon, SellableKind

CheckoutStatus = Literal["redirect", "payment_required"]


class Address(BaseModel):
    """Shipping or billing address."""

    model_config = ConfigDict(from_attributes=True)

    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=1, max_length=50)
    address_line_1: str = Field(min_length=1, max_length=255)
    address_line_2: str | None = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    postal_code: str | None = Field(default=None, max_length=20)
    country: str = Field(min_length=1, max_length=100)


class CheckoutRequest(BaseModel):
    """Schema for placing an order via POST /checkout."""

    shipping_address: Address
    billing_same_as_shipping: bool = Field(default=True)
    billing_address: Address | None = Field(default=None, description="Required when billing differs")
    payment_method: str = Field(min_length=1, max_length=50, description="Payment gateway identifier")
    payment_reference: str | None = Field(default=None, max_length=255, description="Client-generated reference")
    idempotency_key: str | None = Field(default=None, max_length=255)
    customer_notes: str | None = Field(default=None, max_length=500)
    customer_email: str | None = Field(default=None, max_length=255)
    save_addresses: bool = Field(default=False)

    def resolved_billing_address(self) -> Address | None:
        """Billing address to store, or None if it is required but missing."""
        if self.billing_same_as_shipping:
            return self.shipping_address
        return self.billing_address


class PaymentGatewayInfo(BaseModel):
    """A payment gateway offered at checkout."""

    identifier: str
    name: str
    is_available: bool
    supports_inline: bool
    supports_refunds: bool = False
    supported_currencies: list[str] = Field(default_factory=list)
    public_key: str | None = None


class InlinePaymentConfig(BaseModel):
    """What the storefront needs to open an in-page payment popup."""

    gateway: str
    public_key: str | None = None
    reference: str
    amount_minor: int = Field(ge=0, description="Amount in the currency's smallest unit")
    currency: str
    email: str | None = None
    client_secret: str | None = Field(default=None, description="Stripe PaymentIntent client secret")
    callback_url: str


class CheckoutPageResponse(BaseModel):
    """Schema for GET /checkout."""

    summary: CartSummary
    payment_reference: str = Field(description="Stable for the life of this checkout")
    gateways: list[PaymentGatewayInfo]


class OrderItemResponse(BaseModel):
    """Immutable order line snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: SellableKind
    name: str
    variant_label: str | None = None
    quantity: int = Field(ge=1)
    unit_price: Decimal
    total_amount: Decimal
    packaging_name: str | None = None
    material_option: MaterialOption | None = None
    selected_addons: list[SelectedAddon] = Field(default_factory=list)


class OrderResponse(BaseModel):
    """Read-only order confirmation projection."""

    model_config = ConfigDict(from_attributes=True)

    order_number: str
    status: str
    payment_status: str
    payment_method: str
    payment_reference: str | None = None
    items: list[OrderItemResponse] = Field(default_factory=list)
    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    shipping_address: dict[str, Any] = Field(default_factory=dict)
    customer_notes: str | None = None
    created_at: datetime | None = None

    @field_validator("shipping_address", mode="before")
    @classmethod
    def decode_address(cls, value: Any) -> Any:
        """Addresses are stored JSON-encoded; decode before validation."""
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            return json.loads(value)
        return value


class CheckoutResponse(BaseModel):
    """Result of POST /checkout."""

    status: CheckoutStatus
    redirect_url: str | None = Field(default=None, description="Where to navigate on success")
    order: OrderResponse
    inline: InlinePaymentConfig | None = Field(default=None, description="Set when payment_required")
