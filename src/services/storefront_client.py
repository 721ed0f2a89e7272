"""Async client for the storefront cart and checkout API."""

import logging
from typing import Any

import httpx

from src.schemas.cart import CartResponse, MaterialOption
from src.schemas.checkout import CheckoutPageResponse, CheckoutResponse, OrderResponse
from src.services.addon_selection import AddonSelection

logger = logging.getLogger(__name__)

CART_TOKEN_HEADER = "X-Cart-Token"
CUSTOMER_ID_HEADER = "X-Customer-ID"


class StorefrontAPIError(Exception):
    """Non-success response from the storefront API."""

    def __init__(
        self,
        message: str,
        status_code: int,
        errors: dict[str, list[str]] | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.errors = errors or {}
        super().__init__(message)


class CheckoutValidationError(StorefrontAPIError):
    """422 response carrying field-keyed validation messages."""


class StorefrontClient:
    """Client bound to one shop and one cart identity.

    The server answers every cart mutation with a fresh snapshot, so this
    client keeps no cart state of its own besides the cart token.
    """

    def __init__(
        self,
        base_url: str,
        shop_slug: str,
        cart_token: str | None = None,
        customer_id: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.shop_slug = shop_slug
        self.cart_token = cart_token
        self.customer_id = customer_id
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/"), transport=transport, timeout=timeout)

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def shop_path(self) -> str:
        return f"/api/v1/shops/{self.shop_slug}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.cart_token:
            headers[CART_TOKEN_HEADER] = self.cart_token
        if self.customer_id is not None:
            headers[CUSTOMER_ID_HEADER] = str(self.customer_id)
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._http.request(method, path, headers=self._headers(), **kwargs)

        token = response.headers.get(CART_TOKEN_HEADER)
        if token:
            self.cart_token = token

        if response.is_success or response.is_redirect:
            return response

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") or response.reason_phrase
        errors = body.get("errors") or {}
        logger.info("Storefront API %s %s failed: %s", method, path, response.status_code)
        if response.status_code == 422:
            raise CheckoutValidationError(message, response.status_code, errors)
        raise StorefrontAPIError(message, response.status_code, errors)

    async def get_cart(self) -> CartResponse:
        response = await self._request("GET", f"{self.shop_path}/cart")
        return CartResponse.model_validate(response.json())

    async def add_item(
        self,
        variant_id: int,
        quantity: int = 1,
        packaging_type_id: int | None = None,
    ) -> CartResponse:
        response = await self._request(
            "POST",
            f"{self.shop_path}/cart/items",
            json={"variant_id": variant_id, "quantity": quantity, "packaging_type_id": packaging_type_id},
        )
        return CartResponse.model_validate(response.json())

    async def add_service_item(
        self,
        service_variant_id: int,
        quantity: int = 1,
        material_option: MaterialOption | None = None,
        addons: AddonSelection | None = None,
    ) -> CartResponse:
        payload = {
            "service_variant_id": service_variant_id,
            "quantity": quantity,
            "material_option": material_option.value if material_option else None,
            "selected_addons": addons.to_payload() if addons else [],
        }
        response = await self._request("POST", f"{self.shop_path}/cart/services", json=payload)
        return CartResponse.model_validate(response.json())

    async def update_quantity(self, item_id: int, quantity: int) -> CartResponse:
        response = await self._request(
            "PATCH", f"{self.shop_path}/cart/items/{item_id}", json={"quantity": quantity}
        )
        return CartResponse.model_validate(response.json())

    async def remove_item(self, item_id: int) -> CartResponse:
        response = await self._request("DELETE", f"{self.shop_path}/cart/items/{item_id}")
        return CartResponse.model_validate(response.json())

    async def get_checkout(self) -> CheckoutPageResponse:
        response = await self._request("GET", f"{self.shop_path}/checkout")
        return CheckoutPageResponse.model_validate(response.json())

    async def place_order(self, payload: dict[str, Any]) -> CheckoutResponse:
        """Submit a checkout intent.

        Raises:
            CheckoutValidationError: With the server's field errors on 422.
            StorefrontAPIError: For any other failure.
        """
        response = await self._request("POST", f"{self.shop_path}/checkout", json=payload)
        return CheckoutResponse.model_validate(response.json())

    async def complete_inline_payment(self, callback_url: str) -> str:
        """Follow the payment callback and return where the server redirects to."""
        response = await self._request("GET", callback_url, follow_redirects=False)
        return response.headers.get("location", "")

    async def get_order(self, order_number: str) -> OrderResponse:
        response = await self._request("GET", f"{self.shop_path}/orders/{order_number}")
        return OrderResponse.model_validate(response.json())
