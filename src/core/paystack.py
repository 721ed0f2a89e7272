"""Paystack REST client for transaction verification and webhook signatures."""

import hashlib
import hmac
import logging
from typing import Any

import httpx

from src.core.config import get_settings

logger = logging.getLogger(__name__)


class PaystackError(Exception):
    """Raised when Paystack cannot be reached or rejects a request."""


class PaystackClient:
    """Thin async wrapper around the Paystack transaction API."""

    def __init__(
        self,
        secret_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.secret_key = secret_key if secret_key is not None else settings.paystack_secret_key
        self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self.timeout = settings.paystack_timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    async def verify_transaction(self, reference: str) -> dict[str, Any]:
        """Fetch the verification record for a transaction reference.

        Args:
            reference: The payment reference the popup was opened with.

        Returns:
            dict: The `data` object of the Paystack response.

        Raises:
            PaystackError: If the key is missing, the request fails, or
                Paystack answers with status false.
        """
        if not self.is_configured:
            raise PaystackError("Paystack secret key is not configured")

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(
                    f"/transaction/verify/{reference}",
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
            except httpx.HTTPError as e:
                raise PaystackError(f"Paystack request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                "Paystack verification failed",
                extra={"reference": reference, "status_code": response.status_code},
            )
            raise PaystackError(f"Paystack verification returned {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            logger.error("Paystack returned a non-JSON body", extra={"reference": reference})
            raise PaystackError("Paystack returned an invalid response") from e
        if not isinstance(body, dict):
            raise PaystackError("Paystack returned an invalid response")
        if not body.get("status"):
            raise PaystackError(body.get("message") or "Paystack verification rejected")
        return body.get("data") or {}

    def verify_signature(self, payload: bytes, signature: str) -> bool:
        """Check an `x-paystack-signature` header (HMAC-SHA512 of the raw body)."""
        if not self.is_configured or not signature:
            return False
        computed = hmac.new(self.secret_key.encode(), payload, hashlib.sha512).hexdigest()
        return hmac.compare_digest(computed, signature)


def get_paystack_client() -> PaystackClient:
    """Create a Paystack client from application settings."""
    return PaystackClient()
