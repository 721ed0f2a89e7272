"""Line item pricing: tier selection, subtotals, quantity clamping.

Everything here is pure. Line items are frozen, so every change produces a
new item with a recomputed subtotal and callers replace the old one by id.
"""

import json
from collections.abc import Iterable, Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from src.schemas.cart import (
    LineItem,
    MaterialOption,
    ProductSellable,
    SelectedAddon,
    SellableKind,
    ServiceSellable,
)
from src.services.sellable import resolve_sellable, to_decimal

CENT = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    """Round a money amount to two places."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def base_price_for_material_option(
    variant: ServiceSellable,
    option: MaterialOption | str | None,
) -> Decimal:
    """Select the unit price of a service for the chosen material option.

    A service without material options always uses its base price, and a
    tier without a configured price falls back to the base price.
    """
    if not variant.has_material_options or option is None:
        return variant.base_price

    option = MaterialOption(option)
    price = None
    if option == MaterialOption.CUSTOMER_MATERIALS:
        price = variant.customer_materials_price
    elif option == MaterialOption.SHOP_MATERIALS:
        price = variant.shop_materials_price
    return price if price is not None else variant.base_price


def addons_total(addons: Iterable[SelectedAddon]) -> Decimal:
    return sum((addon.unit_price * addon.quantity for addon in addons), Decimal("0"))


def compute_subtotal(item: LineItem) -> Decimal:
    """Compute a line's subtotal.

    Products: unit_price x quantity. Services: unit_price x quantity plus
    each add-on's unit_price x its own quantity (add-ons are charged once
    per line, not per unit).
    """
    subtotal = item.unit_price * item.quantity
    if item.kind == SellableKind.SERVICE:
        subtotal += addons_total(item.selected_addons)
    return quantize(subtotal)


def clamp_quantity(sellable: Any, requested: int) -> int:
    """Clamp a requested quantity to what the sellable allows.

    Products are limited to [1, available_stock]; services only have the
    lower bound since their capacity is not stock-limited.
    """
    quantity = max(int(requested), 1)
    if isinstance(sellable, ProductSellable):
        quantity = min(quantity, max(sellable.available_stock, 1))
    return quantity


def stock_warning_for(sellable: Any, requested: int) -> str | None:
    """Return an availability warning when a product request exceeds stock."""
    if isinstance(sellable, ProductSellable) and requested > sellable.available_stock:
        return f"Only {sellable.available_stock} available"
    return None


def make_line_item(
    *,
    id: int,
    sellable: Any,
    quantity: int,
    unit_price: Decimal,
    packaging_type_id: int | None = None,
    packaging_name: str | None = None,
    material_option: MaterialOption | None = None,
    selected_addons: Sequence[SelectedAddon] = (),
    stock_warning: str | None = None,
) -> LineItem:
    """Build a LineItem whose subtotal is derived from its other fields."""
    draft = LineItem(
        id=id,
        sellable=sellable,
        quantity=quantity,
        unit_price=quantize(unit_price),
        subtotal=Decimal("0"),
        packaging_type_id=packaging_type_id,
        packaging_name=packaging_name,
        material_option=material_option,
        selected_addons=tuple(selected_addons),
        stock_warning=stock_warning,
    )
    return draft.model_copy(update={"subtotal": compute_subtotal(draft)})


def with_quantity(item: LineItem, requested: int) -> LineItem:
    """Return a copy of the item at the clamped quantity."""
    quantity = clamp_quantity(item.sellable, requested)
    draft = item.model_copy(
        update={
            "quantity": quantity,
            "stock_warning": stock_warning_for(item.sellable, requested),
        }
    )
    return draft.model_copy(update={"subtotal": compute_subtotal(draft)})


def with_addons(item: LineItem, addons: Sequence[SelectedAddon]) -> LineItem:
    """Return a copy of a service item with its add-ons replaced."""
    if not item.is_service:
        raise ValueError("Add-ons only apply to service items")
    draft = item.model_copy(update={"selected_addons": tuple(addons)})
    return draft.model_copy(update={"subtotal": compute_subtotal(draft)})


def replace_item(items: Sequence[LineItem], item: LineItem) -> tuple[LineItem, ...]:
    """Return the sequence with the item of the same id swapped in place."""
    if not any(existing.id == item.id for existing in items):
        raise LookupError(f"Line item {item.id} not found")
    return tuple(item if existing.id == item.id else existing for existing in items)


def remove_item(items: Sequence[LineItem], item_id: int) -> tuple[LineItem, ...]:
    return tuple(existing for existing in items if existing.id != item_id)


def parse_addons(raw: Any) -> tuple[SelectedAddon, ...]:
    """Decode a selected_addons column (JSONB list or JSON string)."""
    if not raw:
        return ()
    if isinstance(raw, str):
        raw = json.loads(raw)
    addons = []
    for entry in raw:
        addons.append(
            SelectedAddon(
                addon_id=int(entry["addon_id"]),
                name=entry.get("name") or "",
                quantity=int(entry.get("quantity") or 1),
                unit_price=to_decimal(entry.get("unit_price") or entry.get("price"), Decimal("0")),
            )
        )
    return tuple(addons)


def build_line_item(raw: Mapping[str, Any]) -> LineItem:
    """Ingest a cart_items row into a LineItem.

    The sellable kind is resolved here, once. Service rows price from the
    stored tier price; if the row predates that column the tier is
    recomputed from the embedded variant.
    """
    sellable = resolve_sellable(raw)
    quantity = max(int(raw.get("quantity") or 1), 1)
    material_option = MaterialOption(raw["material_option"]) if raw.get("material_option") else None

    if isinstance(sellable, ServiceSellable):
        unit_price = to_decimal(raw.get("base_price"))
        if unit_price is None:
            unit_price = base_price_for_material_option(sellable, material_option)
        addons = parse_addons(raw.get("selected_addons"))
    else:
        unit_price = to_decimal(raw.get("price"), Decimal("0"))
        addons = ()

    packaging = raw.get("packaging_type") or {}
    return make_line_item(
        id=int(raw["id"]),
        sellable=sellable,
        quantity=quantity,
        unit_price=unit_price,
        packaging_type_id=raw.get("product_packaging_type_id"),
        packaging_name=packaging.get("name"),
        material_option=material_option,
        selected_addons=addons,
        stock_warning=stock_warning_for(sellable, quantity),
    )
