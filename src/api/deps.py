"""FastAPI dependency injection functions."""

from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, Header, Path, Request, Response

from src.api.middleware.error_handler import NotFoundError
from src.core.config import get_settings
from src.services.cart_service import CartService
from src.services.shop_service import ShopService
from src.services.storefront_client import CART_TOKEN_HEADER


def get_cart_cookie_config() -> dict:
    """Get cart cookie configuration from settings."""
    settings = get_settings()
    # SameSite=None is only accepted together with Secure
    samesite = "none" if settings.cart_cookie_secure else "lax"
    return {
        "key": settings.cart_cookie_name,
        "max_age": settings.cart_cookie_max_age,
        "httponly": True,
        "secure": settings.cart_cookie_secure,
        "samesite": samesite,
        "path": "/",
    }


def get_cart_token(request: Request) -> str | None:
    """Extract the guest cart token from the X-Cart-Token header or cookie.

    The header wins so that clients with third-party cookies blocked
    still keep their cart.
    """
    header_token = request.headers.get(CART_TOKEN_HEADER)
    if header_token:
        return header_token
    return request.cookies.get(get_cart_cookie_config()["key"])


def set_cart_cookie(response: Response, token: str) -> None:
    config = get_cart_cookie_config()
    response.set_cookie(
        key=config["key"],
        value=token,
        max_age=config["max_age"],
        httponly=config["httponly"],
        secure=config["secure"],
        samesite=config["samesite"],
        path=config["path"],
    )


async def get_shop(shop_slug: Annotated[str, Path(min_length=1, max_length=255)]) -> dict[str, Any]:
    """Resolve the shop from the URL slug.

    Raises:
        NotFoundError: If the shop is missing or not open for online orders.
    """
    shop = await ShopService().get_shop_by_slug(shop_slug)
    if not shop:
        raise NotFoundError("Shop not found")
    return shop


async def get_customer_id(
    x_customer_id: Annotated[int | None, Header(description="Signed-in customer id")] = None,
) -> int | None:
    return x_customer_id


CurrentShop = Annotated[dict[str, Any], Depends(get_shop)]
CustomerId = Annotated[int | None, Depends(get_customer_id)]


@dataclass
class CartContext:
    """The shop, the shopper's cart and the identity that owns it."""

    shop: dict[str, Any]
    cart: dict[str, Any]
    cart_token: str | None = None
    customer_id: int | None = None


async def get_cart_context(
    request: Request,
    response: Response,
    shop: CurrentShop,
    customer_id: CustomerId,
) -> CartContext:
    """Load or create the current cart.

    Signed-in customers are identified by id. Guests by cart token; a
    guest without one gets a new token via cookie and response header.
    """
    service = CartService()
    cart_token = get_cart_token(request)

    if not customer_id and not cart_token:
        cart_token = service.generate_cart_token()
        set_cart_cookie(response, cart_token)
        response.headers[CART_TOKEN_HEADER] = cart_token

    cart = await service.get_cart(shop, cart_token=cart_token, customer_id=customer_id)
    return CartContext(shop=shop, cart=cart, cart_token=cart_token, customer_id=customer_id)


CurrentCart = Annotated[CartContext, Depends(get_cart_context)]
