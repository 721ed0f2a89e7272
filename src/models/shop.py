"""Shop model type definitions for database operations."""

from typing import TypedDict


class StorefrontSettings(TypedDict, total=False):
    """Per-shop storefront configuration stored as JSONB."""

    shipping_fee: float
    free_shipping_threshold: float | None


class Shop(TypedDict):
    """Shop table row representation.

    Only the columns the storefront reads are listed.
    """

    id: int
    tenant_id: int
    name: str
    slug: str
    currency: str
    is_active: bool
    storefront_enabled: bool
    vat_enabled: bool
    vat_rate: float
    storefront_settings: StorefrontSettings | None
