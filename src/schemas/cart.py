"""Cart Pydantic schemas: sellable references, line items, summaries and requests."""

from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# Stock ceiling used when a product variant does not report availability
UNLIMITED_STOCK = 999


class SellableKind(str, Enum):
    """What a line item sells."""

    PRODUCT = "product"
    SERVICE = "service"
    UNKNOWN = "unknown"


class MaterialOption(str, Enum):
    """Who supplies materials for a service, which selects its price tier."""

    NONE = "none"
    CUSTOMER_MATERIALS = "customer_materials"
    SHOP_MATERIALS = "shop_materials"


class ProductSellable(BaseModel):
    """A product variant as seen by the cart."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["product"] = "product"
    variant_id: int | None = Field(default=None, description="Product variant ID")
    sku: str | None = Field(default=None, description="Variant SKU")
    product_name: str = Field(default="Product", min_length=1, description="Product display name")
    image_url: str | None = Field(default=None, description="Primary image URL")
    available_stock: int = Field(default=UNLIMITED_STOCK, ge=0, description="Units available to sell")
    is_taxable: bool = Field(default=False, description="Whether VAT applies to this product")

    @property
    def display_name(self) -> str:
        return self.product_name

    @property
    def variant_label(self) -> str | None:
        return self.sku


class ServiceSellable(BaseModel):
    """A service variant as seen by the cart."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["service"] = "service"
    variant_id: int | None = Field(default=None, description="Service variant ID")
    service_name: str = Field(default="Service", min_length=1, description="Service display name")
    variant_label: str | None = Field(default=None, description="Variant name")
    image_url: str | None = Field(default=None, description="Primary image URL")
    base_price: Decimal = Field(default=Decimal("0"), ge=0, description="Price without material tier")
    estimated_duration_minutes: int | None = Field(default=None, description="Expected duration")
    has_material_options: bool = Field(default=False, description="Whether material tiers apply")
    customer_materials_price: Decimal | None = Field(default=None, ge=0)
    shop_materials_price: Decimal | None = Field(default=None, ge=0)

    @property
    def display_name(self) -> str:
        return self.service_name


class GenericSellable(BaseModel):
    """Placeholder for rows whose sellable could not be identified."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unknown"] = "unknown"
    name: str = Field(default="Item", min_length=1)

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def variant_label(self) -> str | None:
        return None


SellableReference = Annotated[
    Union[ProductSellable, ServiceSellable, GenericSellable],
    Field(discriminator="kind"),
]


class SelectedAddon(BaseModel):
    """An add-on charged alongside a service line."""

    model_config = ConfigDict(frozen=True)

    addon_id: int = Field(description="Service add-on ID")
    name: str = Field(default="", description="Add-on name at the time it was selected")
    quantity: int = Field(ge=1, description="Add-on quantity")
    unit_price: Decimal = Field(ge=0, description="Add-on unit price")


class LineItem(BaseModel):
    """One cart or order entry.

    Instances are immutable. Use the helpers in src.services.pricing to
    derive changed copies so that the subtotal is always recomputed.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Line item ID, unique within its cart")
    sellable: SellableReference
    quantity: int = Field(ge=1, description="Units of the sellable")
    unit_price: Decimal = Field(ge=0, description="Price per unit (material tier price for services)")
    subtotal: Decimal = Field(ge=0, description="Line total including add-ons")
    packaging_type_id: int | None = Field(default=None, description="Product packaging choice")
    packaging_name: str | None = Field(default=None, description="Product packaging name")
    material_option: MaterialOption | None = Field(default=None, description="Service material option")
    selected_addons: tuple[SelectedAddon, ...] = Field(default=(), description="Service add-ons")
    stock_warning: str | None = Field(default=None, description="Availability warning for this line")

    @property
    def kind(self) -> SellableKind:
        return SellableKind(self.sellable.kind)

    @property
    def is_product(self) -> bool:
        return self.sellable.kind == SellableKind.PRODUCT

    @property
    def is_service(self) -> bool:
        return self.sellable.kind == SellableKind.SERVICE

    @property
    def display_name(self) -> str:
        return self.sellable.display_name


class CartSummary(BaseModel):
    """Aggregated view over a cart's line items."""

    model_config = ConfigDict(frozen=True)

    items: tuple[LineItem, ...] = Field(default=(), description="Line items in cart order")
    item_count: int = Field(ge=0, description="Sum of quantities, shown on the header badge")
    subtotal: Decimal = Field(ge=0)
    tax: Decimal = Field(ge=0)
    shipping_fee: Decimal = Field(ge=0)
    total: Decimal = Field(ge=0)
    consistent: bool = Field(default=True, description="False when a reported total disagreed with the fold")


class CartItemCreate(BaseModel):
    """Schema for POST /cart/items."""

    variant_id: int = Field(description="Product variant ID")
    quantity: int = Field(default=1, ge=1, description="Units to add")
    packaging_type_id: int | None = Field(default=None, description="Packaging type ID")


class AddonSelectionInput(BaseModel):
    """One entry of selected_addons in an add-service request."""

    addon_id: int
    quantity: int = Field(ge=1)


class ServiceCartItemCreate(BaseModel):
    """Schema for POST /cart/services."""

    service_variant_id: int = Field(description="Service variant ID")
    quantity: int = Field(default=1, ge=1, description="Bookings to add")
    material_option: MaterialOption | None = Field(default=None)
    selected_addons: list[AddonSelectionInput] = Field(default_factory=list)


class CartItemQuantityUpdate(BaseModel):
    """Schema for PATCH /cart/items/{item_id}. Zero removes the item."""

    quantity: int = Field(ge=0)


class CartResponse(BaseModel):
    """Fresh cart snapshot returned after every read or mutation."""

    cart_id: int = Field(description="Cart ID")
    summary: CartSummary
    warnings: list[str] = Field(default_factory=list, description="Line-level availability warnings")
