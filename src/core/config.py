"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")

    # Cart identity
    cart_cookie_name: str = Field(default="storefront_cart", description="Cart token cookie name")
    cart_cookie_max_age: int = Field(default=604800, description="Cart cookie max age in seconds (7 days)")
    cart_cookie_secure: bool = Field(default=True, description="Use secure cookies (HTTPS only)")
    guest_cart_expiry_days: int = Field(default=7, description="Days until a guest cart expires")
    customer_cart_expiry_days: int = Field(default=30, description="Days until a customer cart expires")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_publishable_key: str = Field(default="", description="Stripe publishable key (for frontend)")

    # Paystack
    paystack_secret_key: str = Field(default="", description="Paystack secret key")
    paystack_public_key: str = Field(default="", description="Paystack public key (for the inline popup)")
    paystack_base_url: str = Field(default="https://api.paystack.co", description="Paystack API base URL")
    paystack_timeout_seconds: float = Field(default=10.0, description="Paystack HTTP timeout")

    # Storefront
    default_currency: str = Field(default="NGN", description="Currency used when a shop has none set")
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Storefront URL used to build redirect targets",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
