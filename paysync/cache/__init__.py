"""In-memory transaction and price cache."""

from paysync.cache.memory import (
    InMemoryCache,
    NO_EXPIRATION,
    PRICE_PREFIX,
    TRANSACTION_PREFIX,
)

__all__ = ["InMemoryCache", "NO_EXPIRATION", "PRICE_PREFIX", "TRANSACTION_PREFIX"]
