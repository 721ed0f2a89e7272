"""Stripe SDK setup for the card gateway."""

import logging

import stripe

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def configure_stripe() -> bool:
    """Apply the secret key and app info to the Stripe module.

    Called once at startup. The SDK is configured globally, so every later
    `get_stripe()` caller shares this key.

    Returns:
        bool: True when card payments can be taken.
    """
    settings = get_settings()
    if not settings.stripe_secret_key:
        logger.warning("Stripe secret key not configured; the card gateway is unavailable")
        return False

    stripe.api_key = settings.stripe_secret_key
    stripe.set_app_info(settings.app_name, version="0.1.0")
    return True


def get_stripe() -> stripe:
    """Return the Stripe module configured by configure_stripe()."""
    return stripe
