"""Checkout, payment callback and order API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import RedirectResponse

from src.api.deps import CurrentCart, CurrentShop, CustomerId, get_cart_token
from src.api.middleware.error_handler import (
    APIError,
    AuthorizationError,
    NotFoundError,
    StockError,
    ValidationError,
)
from src.schemas.checkout import CheckoutPageResponse, CheckoutRequest, CheckoutResponse, OrderResponse
from src.services.checkout_service import CheckoutFieldError, CheckoutService, InsufficientStockError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shops/{shop_slug}", tags=["checkout"])


@router.get(
    "/checkout",
    response_model=CheckoutPageResponse,
    summary="Get checkout page data",
    description="Returns the cart summary, a stable payment reference and the gateways offered.",
)
async def get_checkout(ctx: CurrentCart) -> CheckoutPageResponse:
    service = CheckoutService()
    try:
        data = await service.get_checkout(ctx.shop, ctx.cart)
    except ValueError as e:
        raise APIError(str(e), status.HTTP_400_BAD_REQUEST, "empty_cart") from e
    return CheckoutPageResponse(**data)


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description=(
        "Creates an order from the cart. Offline gateways return a redirect; "
        "inline gateways return the configuration for the payment popup."
    ),
)
async def place_order(data: CheckoutRequest, ctx: CurrentCart) -> CheckoutResponse:
    """Place an order from the current cart.

    Raises:
        ValidationError: 422 with field errors for rejected intent fields.
        StockError: 409 if a product line exceeds available stock.
        APIError: 400 `empty_cart` if the cart has no items.
    """
    service = CheckoutService()
    try:
        return await service.place_order(ctx.shop, ctx.cart, data, ctx.customer_id)
    except CheckoutFieldError as e:
        raise ValidationError(str(e), errors={e.field: [str(e)]}) from e
    except InsufficientStockError as e:
        raise StockError(str(e), errors={"cart": [str(e)]}) from e
    except ValueError as e:
        raise APIError(str(e), status.HTTP_400_BAD_REQUEST, "empty_cart") from e


@router.get(
    "/payment/callback/{gateway}",
    response_class=RedirectResponse,
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Inline payment callback",
    description="Verifies an inline payment and redirects to the success or pending page.",
)
async def payment_callback(
    gateway: str,
    shop: CurrentShop,
    reference: Annotated[str, Query(min_length=1)],
    trxref: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    service = CheckoutService()
    if not service.gateways.has(gateway):
        raise NotFoundError("Payment gateway not found")

    order = await service.verify_payment(shop, gateway, reference, trxref)
    if order is None:
        return RedirectResponse(service.storefront_url(shop), status_code=status.HTTP_303_SEE_OTHER)

    if order.get("payment_status") == "paid":
        target = service.success_url(shop, order)
    else:
        logger.info("Payment for order %s still pending", order["order_number"])
        target = service.pending_url(shop, order)
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)


@router.get(
    "/orders/{order_number}",
    response_model=OrderResponse,
    summary="Get order",
    description="Returns an order confirmation. Only the customer or guest cart that placed it may read it.",
)
async def get_order(
    order_number: str,
    request: Request,
    shop: CurrentShop,
    customer_id: CustomerId,
) -> OrderResponse:
    service = CheckoutService()
    order = await service.get_order(shop, order_number)
    if not order:
        raise NotFoundError("Order not found")

    if not service.can_access_order(order, customer_id=customer_id, cart_token=get_cart_token(request)):
        raise AuthorizationError("Not authorized to view this order")

    return await service.build_order_response(order)
