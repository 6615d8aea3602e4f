"""Storefront Configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Storefront settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backing REST API
    api_base_url: str = "http://localhost:5000/api"
    request_timeout: float = 30.0
    max_retries: int = 2
    retry_delay: float = 1.0
    retry_status_codes: list[int] = [408, 429, 500, 502, 503, 504]
    idempotent_methods: list[str] = ["GET", "HEAD", "OPTIONS", "PUT", "DELETE"]

    # Pricing (KES)
    currency: str = "KES"
    shipping_fee: int = 300
    charge_shipping_on_empty_cart: bool = False
    apply_price_adjustments: bool = False
    tax_rate: float = 0.0
    discount_codes: dict[str, float] = {}

    # Cart behaviour
    enforce_stock_ceiling: bool = True
    default_size: str = "370g"
    sync_cooldown_seconds: float = 300.0
    background_sync_interval: float = 300.0

    # Durable client-side storage
    cart_storage_key: str = "lindas-cart"
    wishlist_storage_key: str = "lindas-wishlist"
    storage_path: Optional[str] = None  # In-memory storage when unset

    # M-Pesa endpoints
    stk_push_path: str = "/mpesa/stk-push"
    legacy_stk_push_path: str = "/mpesa/stkpush"
    status_path: str = "/mpesa/status/{checkout_request_id}"
    legacy_query_path: str = "/mpesa/query"
    cancel_path: str = "/mpesa/cancel"
    payment_poll_interval: float = 5.0

    @property
    def storage_configured(self) -> bool:
        """Check if durable file storage is configured"""
        return bool(self.storage_path)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
