from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    A provider adapter is only built when its credentials are present, so an
    empty environment yields a service with no live providers.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: affects log rendering and the mock provider."""

    DEBUG: bool = True
    """Enable debug mode: verbose logging."""

    # Price list
    PRICES_CSV_PATH: str = "prices.csv"
    """Path to the semicolon separated product price list."""

    # Stripe
    STRIPE_APIKEY: Optional[str] = None
    """Secret API key for Stripe."""

    STRIPE_APIURL: str = "https://api.stripe.com"
    """Base URL for the Stripe REST API."""

    # Vipps
    VIPPS_SUBSCRIPTION_KEY: Optional[str] = None
    """Ocp-Apim-Subscription-Key for the Vipps APIs."""

    VIPPS_APIURL: str = "https://api.vipps.no"
    """Base URL for the Vipps APIs."""

    VIPPS_CLIENT_ID: Optional[str] = None
    VIPPS_SECRET: Optional[str] = None
    VIPPS_MERCHANT_SERIAL_NUMBER: Optional[str] = None

    # Zettle
    ZETTLE_APIKEY: Optional[str] = None
    """Bearer API key for Zettle."""

    ZETTLE_APIURL: str = "https://purchase.izettle.com"
    """Base URL for the Zettle purchase API."""

    # Mock provider (development)
    USE_MOCK_PROVIDER: bool = False
    """Register the mock provider. Useful when no real credentials exist."""

    # Background fetching and cache
    FETCH_INTERVAL_SECONDS: int = Field(default=300, gt=0)
    """Seconds between background fetch cycles per provider."""

    AUTO_START_FETCHER: bool = True
    """Start the background fetcher on application startup."""

    CACHE_TTL_HOURS: int = Field(default=24, gt=0)
    """Lifetime of cached transactions."""

    CACHE_CLEANUP_MINUTES: int = Field(default=60, gt=0)
    """Interval between sweeps of expired cache entries."""

    # Model config
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()
