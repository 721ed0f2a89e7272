"""Payment gateway registry for storefront checkout."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from src.core.config import get_settings
from src.core.paystack import PaystackClient, get_paystack_client
from src.core.stripe import get_stripe
from src.schemas.checkout import PaymentGatewayInfo

logger = logging.getLogger(__name__)

# Currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "UGX", "XAF", "XOF", "RWF"})


def to_minor_units(amount: Decimal, currency: str) -> int:
    """Convert a decimal amount to the currency's smallest unit."""
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(amount)
    return int((amount * 100).to_integral_value())


@dataclass(frozen=True)
class PaymentVerification:
    """Outcome of asking a provider about a payment reference."""

    reference: str
    paid: bool
    transaction_id: str | None = None
    message: str | None = None


class PaymentGateway:
    """Base gateway. Offline gateways only need identity and availability."""

    identifier: str = ""
    name: str = ""
    supports_inline: bool = False
    supports_refunds: bool = False
    supported_currencies: tuple[str, ...] = ()

    def is_available(self) -> bool:
        return True

    def public_key(self) -> str | None:
        return None

    @property
    def requires_online_processing(self) -> bool:
        return self.supports_inline

    async def verify_payment(self, reference: str, transaction_id: str | None = None) -> PaymentVerification:
        raise ValueError(f"Payment gateway [{self.identifier}] does not verify payments online")

    def prepare_inline(self, order: dict[str, Any], amount_minor: int, currency: str) -> dict[str, Any]:
        """Provider-specific extras for the inline popup (e.g. a client secret)."""
        return {}

    def info(self) -> PaymentGatewayInfo:
        return PaymentGatewayInfo(
            identifier=self.identifier,
            name=self.name,
            is_available=self.is_available(),
            supports_inline=self.supports_inline,
            supports_refunds=self.supports_refunds,
            supported_currencies=list(self.supported_currencies),
            public_key=self.public_key(),
        )


class CashOnDeliveryGateway(PaymentGateway):
    identifier = "cash_on_delivery"
    name = "Cash on Delivery"


class BankTransferGateway(PaymentGateway):
    identifier = "bank_transfer"
    name = "Bank Transfer"


class PaystackGateway(PaymentGateway):
    """Paystack inline popup; verified through the transaction API."""

    identifier = "paystack"
    name = "Paystack"
    supports_inline = True
    supports_refunds = True
    supported_currencies = ("NGN", "GHS", "ZAR", "KES", "USD")

    def __init__(self, client: PaystackClient | None = None) -> None:
        self.client = client or get_paystack_client()
        self.settings = get_settings()

    def is_available(self) -> bool:
        return self.client.is_configured and bool(self.settings.paystack_public_key)

    def public_key(self) -> str | None:
        return self.settings.paystack_public_key or None

    async def verify_payment(self, reference: str, transaction_id: str | None = None) -> PaymentVerification:
        data = await self.client.verify_transaction(reference)
        paid = data.get("status") == "success"
        return PaymentVerification(
            reference=reference,
            paid=paid,
            transaction_id=str(data["id"]) if data.get("id") is not None else transaction_id,
            message=data.get("gateway_response"),
        )


class StripeGateway(PaymentGateway):
    """Stripe PaymentIntent confirmed in-page; verified through the SDK.

    The popup callback's trxref is the PaymentIntent id, and the intent
    carries our payment reference in its metadata.
    """

    identifier = "stripe"
    name = "Card (Stripe)"
    supports_inline = True
    supports_refunds = True
    supported_currencies = ("USD", "EUR", "GBP", "NGN", "KES")

    def __init__(self) -> None:
        self.stripe = get_stripe()
        self.settings = get_settings()

    def is_available(self) -> bool:
        return bool(self.settings.stripe_secret_key and self.settings.stripe_publishable_key)

    def public_key(self) -> str | None:
        return self.settings.stripe_publishable_key or None

    def prepare_inline(self, order: dict[str, Any], amount_minor: int, currency: str) -> dict[str, Any]:
        intent = self.stripe.PaymentIntent.create(
            amount=amount_minor,
            currency=currency.lower(),
            metadata={
                "order_number": order["order_number"],
                "payment_reference": order["payment_reference"],
            },
            idempotency_key=order["payment_reference"],
        )
        return {"client_secret": intent.client_secret}

    async def verify_payment(self, reference: str, transaction_id: str | None = None) -> PaymentVerification:
        if not transaction_id:
            return PaymentVerification(reference=reference, paid=False, message="Missing PaymentIntent id")

        intent = self.stripe.PaymentIntent.retrieve(transaction_id)
        metadata = intent.metadata or {}
        if metadata.get("payment_reference") != reference:
            logger.warning(
                "PaymentIntent %s does not belong to reference %s",
                transaction_id,
                reference,
            )
            return PaymentVerification(reference=reference, paid=False, message="Reference mismatch")

        return PaymentVerification(
            reference=reference,
            paid=intent.status == "succeeded",
            transaction_id=intent.id,
            message=intent.status,
        )


class PaymentGatewayManager:
    """Resolves gateways by identifier."""

    def __init__(self, gateways: list[PaymentGateway] | None = None) -> None:
        self._gateways: dict[str, PaymentGateway] = {}
        for gateway in gateways or []:
            self.register(gateway)

    def register(self, gateway: PaymentGateway) -> None:
        self._gateways[gateway.identifier] = gateway

    def has(self, identifier: str) -> bool:
        return identifier in self._gateways

    def gateway(self, identifier: str) -> PaymentGateway:
        """Get a registered gateway.

        Raises:
            ValueError: If the identifier is not registered.
        """
        if identifier not in self._gateways:
            raise ValueError(f"Payment gateway [{identifier}] is not registered.")
        return self._gateways[identifier]

    def available(self) -> list[PaymentGateway]:
        return [gateway for gateway in self._gateways.values() if gateway.is_available()]

    def storefront_gateways(self, currency: str) -> list[PaymentGatewayInfo]:
        """Gateways to offer at checkout for a shop currency."""
        offered = []
        for gateway in self.available():
            if gateway.supported_currencies and currency.upper() not in gateway.supported_currencies:
                continue
            offered.append(gateway.info())
        return offered


def get_gateway_manager() -> PaymentGatewayManager:
    """Build the default gateway registry."""
    return PaymentGatewayManager(
        [
            CashOnDeliveryGateway(),
            BankTransferGateway(),
            PaystackGateway(),
            StripeGateway(),
        ]
    )
