"""
In-memory TTL cache for transactions and prices.

Transactions expire (24 hours by default); prices never do. Keys are
namespaced by type so a transaction and a price can share a name.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Optional

import structlog

from paysync.core.constants import TRANSACTION_CACHE_TTL

if TYPE_CHECKING:
    from paysync.prices.models import Price
    from paysync.transactions.models import Transaction

logger = structlog.get_logger(__name__)

TRANSACTION_PREFIX = "transaction:"
PRICE_PREFIX = "price:"

# Sentinel TTL: the entry never expires. A zero or negative ttl expires at once.
NO_EXPIRATION = timedelta.max


@dataclass
class _Entry:
    value: Any
    expires_at: Optional[float]  # monotonic seconds, None = never

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryCache:
    """
    Thread-safe key/value store with per-entry expiry.

    Expired entries are treated as absent on every read and removed
    opportunistically every ``cleanup_interval``.
    """

    def __init__(
        self,
        default_ttl: timedelta = TRANSACTION_CACHE_TTL,
        cleanup_interval: timedelta = timedelta(hours=1),
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            default_ttl: Lifetime used when ``set`` gets no ttl
            cleanup_interval: Minimum time between sweeps of expired entries
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._items: dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._next_cleanup = clock() + cleanup_interval.total_seconds()

    # ------------------------------------------------------------------
    # Generic operations
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> None:
        """
        Store ``value`` under ``key``.

        ``NO_EXPIRATION`` keeps it forever. A ttl of zero or less stores an
        entry that is already expired.
        """
        if ttl is None:
            ttl = self.default_ttl

        with self._lock:
            now = self._clock()
            if ttl == NO_EXPIRATION:
                expires_at = None
            elif ttl <= timedelta(0):
                expires_at = now
            else:
                expires_at = now + ttl.total_seconds()
            self._items[key] = _Entry(value=value, expires_at=expires_at)
            self._maybe_cleanup(now)

    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, True)`` for a live entry, ``(None, False)`` otherwise."""
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None, False
            if entry.expired(self._clock()):
                del self._items[key]
                return None, False
            return entry.value, True

    def list(self, prefix: str = "", pattern: str = "") -> list[Any]:
        """Values of live entries whose key starts with ``prefix`` and contains ``pattern``."""
        with self._lock:
            now = self._clock()
            return [
                entry.value
                for key, entry in self._items.items()
                if key.startswith(prefix)
                and (not pattern or pattern in key)
                and not entry.expired(now)
            ]

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def delete_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._items.items() if e.expired(now)]
            for key in expired:
                del self._items[key]
            self._next_cleanup = now + self.cleanup_interval.total_seconds()

        if expired:
            logger.debug("cache.expired_removed", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for e in self._items.values() if not e.expired(now))

    def _maybe_cleanup(self, now: float) -> None:
        if now >= self._next_cleanup:
            self.delete_expired()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def set_transaction(
        self,
        key: str,
        transaction: Transaction,
        ttl: timedelta = TRANSACTION_CACHE_TTL,
    ) -> None:
        self.set(f"{TRANSACTION_PREFIX}{key}", transaction, ttl)

    def get_transaction(self, key: str) -> tuple[Optional[Transaction], bool]:
        return self.get(f"{TRANSACTION_PREFIX}{key}")

    def get_transactions(self, pattern: str = "") -> list[Transaction]:
        """All live transactions, optionally filtered by key substring. Unordered."""
        return self.list(TRANSACTION_PREFIX, pattern)

    def delete_transaction(self, key: str) -> None:
        self.delete(f"{TRANSACTION_PREFIX}{key}")

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def set_price(self, key: str, price: Price) -> None:
        self.set(f"{PRICE_PREFIX}{key}", price, NO_EXPIRATION)

    def get_price(self, key: str) -> tuple[Optional[Price], bool]:
        return self.get(f"{PRICE_PREFIX}{key}")

    def get_prices(self) -> list[Price]:
        return self.list(PRICE_PREFIX)

    def delete_price(self, key: str) -> None:
        self.delete(f"{PRICE_PREFIX}{key}")
