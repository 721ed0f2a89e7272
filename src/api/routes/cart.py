"""Cart API routes for a shop's storefront."""

from typing import Any

from fastapi import APIRouter, Request, status

from src.api.deps import CurrentCart, CurrentShop, CustomerId, get_cart_token
from src.api.middleware.error_handler import AuthorizationError, NotFoundError, ValidationError
from src.schemas.cart import (
    CartItemCreate,
    CartItemQuantityUpdate,
    CartResponse,
    ServiceCartItemCreate,
)
from src.services.cart_service import CartService

router = APIRouter(prefix="/shops/{shop_slug}/cart", tags=["cart"])


async def _snapshot(
    service: CartService,
    shop: dict[str, Any],
    cart: dict[str, Any],
    warning: str | None = None,
) -> CartResponse:
    summary = await service.get_cart_summary(shop, cart)
    warnings = [warning] if warning else []
    return CartResponse(cart_id=cart["id"], summary=summary, warnings=warnings)


@router.get(
    "",
    response_model=CartResponse,
    summary="Get cart",
    description="Returns the current cart with its line items and totals.",
)
async def get_cart(ctx: CurrentCart) -> CartResponse:
    return await _snapshot(CartService(), ctx.shop, ctx.cart)


@router.post(
    "/items",
    response_model=CartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add product to cart",
    description="Adds a product variant. Quantities above available stock are clamped with a warning.",
)
async def add_item(data: CartItemCreate, ctx: CurrentCart) -> CartResponse:
    service = CartService()
    try:
        result = await service.add_item(ctx.cart, data.variant_id, data.quantity, data.packaging_type_id)
    except LookupError as e:
        raise NotFoundError(str(e)) from e
    except ValueError as e:
        raise ValidationError(str(e)) from e
    return await _snapshot(service, ctx.shop, ctx.cart, result["warning"])


@router.post(
    "/services",
    response_model=CartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add service to cart",
    description="Adds a service variant with its material option and add-ons.",
)
async def add_service_item(data: ServiceCartItemCreate, ctx: CurrentCart) -> CartResponse:
    service = CartService()
    try:
        await service.add_service_item(
            ctx.cart,
            data.service_variant_id,
            data.quantity,
            data.material_option,
            data.selected_addons,
        )
    except LookupError as e:
        raise NotFoundError(str(e)) from e
    except ValueError as e:
        raise ValidationError(str(e)) from e
    return await _snapshot(service, ctx.shop, ctx.cart)


@router.patch(
    "/items/{item_id}",
    response_model=CartResponse,
    summary="Update item quantity",
    description="Sets a line's quantity. Zero removes the line.",
)
async def update_item(item_id: int, data: CartItemQuantityUpdate, ctx: CurrentCart) -> CartResponse:
    service = CartService()
    try:
        result = await service.update_quantity(ctx.cart, item_id, data.quantity)
    except LookupError as e:
        raise NotFoundError(str(e)) from e
    except PermissionError as e:
        raise AuthorizationError(str(e)) from e
    return await _snapshot(service, ctx.shop, ctx.cart, result["warning"])


@router.delete(
    "/items/{item_id}",
    response_model=CartResponse,
    summary="Remove item",
)
async def remove_item(item_id: int, ctx: CurrentCart) -> CartResponse:
    service = CartService()
    try:
        await service.remove_item(ctx.cart, item_id)
    except LookupError as e:
        raise NotFoundError(str(e)) from e
    except PermissionError as e:
        raise AuthorizationError(str(e)) from e
    return await _snapshot(service, ctx.shop, ctx.cart)


@router.post(
    "/merge",
    response_model=CartResponse,
    summary="Merge guest cart",
    description="Moves the guest cart identified by the cart token into the signed-in customer's cart.",
)
async def merge_cart(
    request: Request,
    shop: CurrentShop,
    customer_id: CustomerId,
) -> CartResponse:
    if not customer_id:
        raise ValidationError("A signed-in customer is required to merge carts")

    service = CartService()
    cart_token = get_cart_token(request)
    if cart_token:
        cart = await service.merge_guest_cart(shop, cart_token, customer_id)
    else:
        cart = await service.get_cart(shop, customer_id=customer_id)
    return await _snapshot(service, shop, cart)
