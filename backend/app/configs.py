"""Application settings loaded from environment variables.

Defines all environment-driven configuration used by the app.
"""

import json
from functools import lru_cache
from typing import Annotated, Any, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Typed configuration model for the application."""

    # Signed tokens
    PRICE_TOKEN_SECRET: str = ""
    CONFIRM_TOKEN_SECRET: Optional[str] = None
    PRICE_TOKEN_TTL_SEC: int = 1800
    CONFIRM_TOKEN_TTL_SEC: int = 300

    # Redirect policy
    STRICT_PRICE_GUARD: bool = True
    DEGRADED_REDIRECT_ALLOWED: bool = False
    CLICK_VERIFY_TIMEOUT_MS: int = 6500
    LISTING_PRICE_TTL_SEC: int = 21600
    DISPLAY_PRICE_FRESH_MINUTES: int = 60

    # Coupang Partners deeplink API
    COUPANG_ACCESS_KEY: Optional[str] = None
    COUPANG_SECRET_KEY: Optional[str] = None
    COUPANG_API_BASE_URL: str = "https://api-gateway.coupang.com"
    DEEPLINK_CACHE_TTL: int = 86400
    DEEPLINK_FAIL_COOLDOWN_MS: int = 900000
    DEEPLINK_TIMEOUT_SEC: float = 5.0
    DEEPLINK_MAX_REQUESTS_PER_MIN: int = 42
    DEEPLINK_SUB_ID: Optional[str] = None
    AFFILIATE_HOSTS: Annotated[list[str], NoDecode] = ["coupang.com"]

    # Shared breaker state (multi-process deployments)
    DEEPLINK_REDIS_ENABLED: bool = False
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_SSL: bool = False
    REDIS_PREFIX: str = "priceguard"

    # Offers database
    DATABASE_URL: str = "sqlite:///./price_guard.db"

    # Admin
    ADMIN_API_TOKEN: Optional[str] = None
    PRODUCT_TYPES: Annotated[list[str], NoDecode] = ["laptop", "monitor", "desktop"]

    # Scheduled batch verification
    AUTO_VERIFY_ENABLED: bool = False
    AUTO_VERIFY_INTERVAL_HOURS: int = 24
    AUTO_VERIFY_INITIAL_DELAY_SEC: int = 30

    # API parameters
    ROOT_PATH_BACKEND: str = ""
    ALLOWED_ORIGINS: Annotated[list[str], NoDecode] = []

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("AFFILIATE_HOSTS", "PRODUCT_TYPES", "ALLOWED_ORIGINS", mode="before")
    @classmethod
    def split_list(cls, value: Any) -> Any:
        """Accept a JSON array or a comma-separated string."""
        if not isinstance(value, str):
            return value
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [item.strip() for item in value.split(",") if item.strip()]

    @property
    def click_verify_timeout_sec(self) -> float:
        """Hard timeout for a click-time live fetch, never below 1.5s."""
        return max(1500, self.CLICK_VERIFY_TIMEOUT_MS) / 1000.0

    @property
    def deeplink_cooldown_sec(self) -> float:
        return max(0, self.DEEPLINK_FAIL_COOLDOWN_MS) / 1000.0


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
