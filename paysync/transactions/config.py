"""
Background fetcher configuration.

Defines polling interval, fetch size, per-fetch timeout and cache TTL.
"""

from datetime import timedelta

from pydantic import BaseModel, Field

from paysync.core.constants import (
    DEFAULT_FETCH_INTERVAL,
    PROVIDER_FETCH_LIMIT,
    PROVIDER_FETCH_TIMEOUT,
    TRANSACTION_CACHE_TTL,
)


class FetcherConfig(BaseModel):
    """Background fetcher configuration."""

    interval_seconds: float = Field(
        default=DEFAULT_FETCH_INTERVAL.total_seconds(),
        gt=0,
        description="Seconds between fetches per provider",
    )
    fetch_limit: int = Field(
        default=PROVIDER_FETCH_LIMIT,
        ge=1,
        le=1000,
        description="Transactions requested per fetch",
    )
    fetch_timeout_seconds: float = Field(
        default=PROVIDER_FETCH_TIMEOUT.total_seconds(),
        gt=0,
        description="Upper bound for a single provider fetch",
    )
    cache_ttl_seconds: float = Field(
        default=TRANSACTION_CACHE_TTL.total_seconds(),
        gt=0,
        description="Lifetime of fetched transactions in the cache",
    )

    def get_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_ttl_seconds)
