"""Checkout intent: payment reference, client-side checks and submission state.

One CheckoutIntentBuilder lives for one checkout page view. Its payment
reference is generated once and must survive cancelled inline payments,
because the provider has already seen it.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import urlencode

from src.schemas.checkout import InlinePaymentConfig, OrderResponse
from src.services.payment_reference import generate_payment_reference
from src.services.storefront_client import CheckoutValidationError, StorefrontClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldRule:
    required: bool = True
    min_length: int | None = None
    max_length: int | None = None
    pattern: re.Pattern[str] | None = None
    label: str = "This field"

    def check(self, value: Any) -> list[str]:
        text = "" if value is None else str(value).strip()
        if not text:
            return [f"{self.label} is required."] if self.required else []
        messages = []
        if self.min_length is not None and len(text) < self.min_length:
            messages.append(f"{self.label} must be at least {self.min_length} characters.")
        if self.max_length is not None and len(text) > self.max_length:
            messages.append(f"{self.label} may not be greater than {self.max_length} characters.")
        if self.pattern is not None and not self.pattern.match(text):
            messages.append(f"{self.label} format is invalid.")
        return messages


# Mirrors the server rules closely but not exactly; the server decides.
SHIPPING_RULES: dict[str, FieldRule] = {
    "first_name": FieldRule(min_length=2, max_length=255, label="First name"),
    "last_name": FieldRule(min_length=2, max_length=255, label="Last name"),
    "phone": FieldRule(pattern=re.compile(r"^[\d\s\-+()]+$"), max_length=50, label="Phone"),
    "address_line_1": FieldRule(min_length=5, max_length=255, label="Address"),
    "city": FieldRule(min_length=2, max_length=100, label="City"),
    "state": FieldRule(min_length=2, max_length=100, label="State"),
    "country": FieldRule(min_length=2, max_length=100, label="Country"),
}


class CheckoutInProgressError(RuntimeError):
    """Raised when a second submission starts while one is in flight."""


@dataclass(frozen=True)
class CheckoutOutcome:
    """What the page should do after a submission attempt."""

    status: Literal["invalid", "redirect", "payment_required"]
    redirect_url: str | None = None
    order: OrderResponse | None = None
    inline: InlinePaymentConfig | None = None
    errors: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class CheckoutIntentBuilder:
    """Page-lifetime checkout state.

    `processing` is the double-submit latch. It is cleared on every exit
    path of submit(), except while an inline payment popup is open; the
    popup's success or close callback resolves it.
    """

    shop_slug: str
    payment_method: str = "cash_on_delivery"
    shipping_address: dict[str, Any] = field(default_factory=dict)
    billing_same_as_shipping: bool = True
    billing_address: dict[str, Any] | None = None
    customer_notes: str | None = None
    customer_email: str | None = None
    save_addresses: bool = True
    payment_reference: str = ""
    idempotency_key: str = field(default_factory=lambda: uuid.uuid4().hex)
    processing: bool = False
    client_errors: dict[str, list[str]] = field(default_factory=dict)
    server_errors: dict[str, list[str]] = field(default_factory=dict)
    pending_inline: InlinePaymentConfig | None = None

    def __post_init__(self) -> None:
        if not self.payment_reference:
            self.payment_reference = generate_payment_reference(self.shop_slug)

    @property
    def errors(self) -> dict[str, list[str]]:
        """Client errors overlaid with server errors; the server wins per field."""
        return {**self.client_errors, **self.server_errors}

    def set_shipping_field(self, name: str, value: Any) -> None:
        self.shipping_address = {**self.shipping_address, name: value}

    def validate_field(self, name: str) -> list[str]:
        """Run the on-blur check for one shipping field."""
        rule = SHIPPING_RULES.get(name)
        if rule is None:
            return []
        messages = rule.check(self.shipping_address.get(name))
        key = f"shipping_address.{name}"
        updated = {k: v for k, v in self.client_errors.items() if k != key}
        if messages:
            updated[key] = messages
        self.client_errors = updated
        return messages

    def validate(self) -> dict[str, list[str]]:
        for name in SHIPPING_RULES:
            self.validate_field(name)
        return dict(self.client_errors)

    def build_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "shipping_address": dict(self.shipping_address),
            "billing_same_as_shipping": self.billing_same_as_shipping,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "idempotency_key": self.idempotency_key,
            "customer_notes": self.customer_notes,
            "customer_email": self.customer_email,
            "save_addresses": self.save_addresses,
        }
        if not self.billing_same_as_shipping:
            payload["billing_address"] = dict(self.billing_address or {})
        return payload

    async def submit(self, client: StorefrontClient) -> CheckoutOutcome:
        """Validate, then post the intent unless a submission is already in flight.

        Raises:
            CheckoutInProgressError: If the latch is already set.
            StorefrontAPIError: On non-validation server failures (latch cleared).
        """
        if self.processing:
            raise CheckoutInProgressError("Checkout is already being processed")

        if self.validate():
            return CheckoutOutcome(status="invalid", errors=self.errors)

        self.processing = True
        self.server_errors = {}
        awaiting_popup = False
        try:
            result = await client.place_order(self.build_payload())
            if result.status == "payment_required" and result.inline is not None:
                self.pending_inline = result.inline
                awaiting_popup = True
                return CheckoutOutcome(status="payment_required", order=result.order, inline=result.inline)
            return CheckoutOutcome(status="redirect", redirect_url=result.redirect_url, order=result.order)
        except CheckoutValidationError as e:
            self.server_errors = e.errors
            return CheckoutOutcome(status="invalid", errors=self.errors)
        finally:
            if not awaiting_popup:
                self.processing = False

    def on_inline_success(self, reference: str, trxref: str | None = None) -> str:
        """Build the server callback URL for a successful popup.

        The latch stays set: the page is navigating away.
        """
        if self.pending_inline is None:
            raise RuntimeError("No inline payment is pending")
        query = urlencode({"reference": reference, "trxref": trxref or reference})
        return f"{self.pending_inline.callback_url}?{query}"

    def on_inline_close(self) -> None:
        """Popup closed or cancelled: release the latch and nothing else."""
        logger.info("Inline payment closed for reference %s", self.payment_reference)
        self.processing = False
