"""
Transaction repository.

Serves transactions from the cache and falls back to the payment
providers when the cache cannot answer.
"""

import asyncio
from datetime import timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, Field

from paysync.cache import InMemoryCache
from paysync.core.constants import (
    PROVIDER_FETCH_LIMIT,
    PROVIDER_LOOKUP_ORDER,
    TRANSACTION_CACHE_TTL,
    TRANSACTION_LIMIT_DEFAULT,
    TRANSACTION_LIMIT_MAX,
    TRANSACTION_LIMIT_MIN,
    PaymentSource,
)
from paysync.core.errors import CacheRefreshError, TransactionNotFoundError
from paysync.transactions.clients.base import BaseTransactionClient
from paysync.transactions.models import Transaction

logger = structlog.get_logger(__name__)

ClientsArg = Union[
    Mapping[PaymentSource, BaseTransactionClient], Iterable[BaseTransactionClient]
]


class RefreshResult(BaseModel):
    """Outcome of a cache refresh across all providers."""

    fetched: Dict[str, int] = Field(
        default_factory=dict, description="Transactions cached per provider"
    )
    errors: Dict[str, str] = Field(
        default_factory=dict, description="Error message per failed provider"
    )

    @property
    def total(self) -> int:
        return sum(self.fetched.values())

    @property
    def all_failed(self) -> bool:
        return bool(self.errors) and not self.fetched


def order_clients(clients: ClientsArg) -> List[BaseTransactionClient]:
    """
    Arrange adapters in lookup order.

    Known providers come first in their fixed order, any other source
    follows in registration order. One adapter per source.
    """
    if isinstance(clients, Mapping):
        registered = list(clients.values())
    else:
        registered = list(clients)

    by_source: Dict[PaymentSource, BaseTransactionClient] = {}
    for client in registered:
        if client.source in by_source:
            raise ValueError(f"duplicate client for source {client.source.value}")
        by_source[client.source] = client

    ordered = [by_source[s] for s in PROVIDER_LOOKUP_ORDER if s in by_source]
    ordered += [c for c in registered if c.source not in PROVIDER_LOOKUP_ORDER]
    return ordered


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit < TRANSACTION_LIMIT_MIN:
        return TRANSACTION_LIMIT_DEFAULT
    return min(limit, TRANSACTION_LIMIT_MAX)


def newest_first(transactions: List[Transaction]) -> List[Transaction]:
    return sorted(transactions, key=lambda t: t.created_at, reverse=True)


class TransactionRepository:
    """
    Cache-first access to transactions from every configured provider.

    The background fetcher keeps the cache warm. The repository only talks
    to providers when a transaction is missing or the cache is empty.
    """

    def __init__(
        self,
        cache: InMemoryCache,
        clients: ClientsArg = (),
        fetch_limit: int = PROVIDER_FETCH_LIMIT,
        cache_ttl: timedelta = TRANSACTION_CACHE_TTL,
    ):
        self.cache = cache
        self.clients = order_clients(clients)
        self.fetch_limit = fetch_limit
        self.cache_ttl = cache_ttl

    @property
    def sources(self) -> List[str]:
        return [c.get_source_name() for c in self.clients]

    async def get_transactions(self, limit: Optional[int] = TRANSACTION_LIMIT_DEFAULT) -> List[Transaction]:
        """
        Return up to ``limit`` cached transactions, newest first.

        An empty cache triggers exactly one refresh before giving up.

        Raises:
            CacheRefreshError: If the cache is empty and the refresh failed
        """
        limit = clamp_limit(limit)
        cached = newest_first(self.cache.get_transactions())

        if len(cached) >= limit:
            return cached[:limit]

        if cached:
            logger.info(
                "repository.partial_result",
                available=len(cached),
                requested=limit,
            )
            return cached

        logger.warning("repository.cache_empty", action="refresh_once")
        try:
            result = await self.refresh_cache()
        except CacheRefreshError as e:
            logger.error("repository.fallback_refresh_failed", error=str(e))
            raise CacheRefreshError(
                f"no transactions available and failed to refresh cache: {e}"
            ) from e

        if result.all_failed:
            logger.error("repository.fallback_refresh_failed", errors=result.errors)
            raise CacheRefreshError(
                "no transactions available and failed to refresh cache: "
                + "; ".join(f"{k}: {v}" for k, v in result.errors.items())
            )

        return newest_first(self.cache.get_transactions())[:limit]

    async def get_transaction_by_id(self, transaction_id: str) -> Transaction:
        """
        Look a transaction up in the cache, then in each provider in turn.

        Accepts a provider id or an internal ``<source>_internal_<id>`` id.

        Raises:
            TransactionNotFoundError: If neither cache nor any provider has it
        """
        key = self._external_key(transaction_id)

        cached, found = self.cache.get_transaction(key)
        if found:
            return cached

        for client in self.clients:
            try:
                transaction = await client.fetch_by_external_id(key)
            except Exception as e:
                logger.debug(
                    "repository.provider_miss",
                    source=client.get_source_name(),
                    transaction_id=key,
                    error=str(e),
                )
                continue

            self.cache.set_transaction(transaction.external_id, transaction, self.cache_ttl)
            logger.debug(
                "repository.provider_hit",
                source=client.get_source_name(),
                transaction_id=key,
            )
            return transaction

        raise TransactionNotFoundError(transaction_id)

    async def refresh_cache(self) -> RefreshResult:
        """
        Fetch the latest transactions from every provider and cache them.

        A failing provider is logged and contributes nothing.

        Raises:
            CacheRefreshError: If no provider is configured
        """
        if not self.clients:
            raise CacheRefreshError("no payment providers configured")

        outcomes = await asyncio.gather(
            *(c.fetch_latest(self.fetch_limit) for c in self.clients),
            return_exceptions=True,
        )

        result = RefreshResult()
        for client, outcome in zip(self.clients, outcomes):
            source = client.get_source_name()
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(
                    "repository.provider_fetch_failed",
                    source=source,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                result.errors[source] = str(outcome) or type(outcome).__name__
                continue

            for transaction in outcome:
                self.cache.set_transaction(transaction.external_id, transaction, self.cache_ttl)
            result.fetched[source] = len(outcome)
            logger.info("repository.provider_fetched", source=source, count=len(outcome))

        logger.info(
            "repository.cache_refreshed",
            total_transactions=result.total,
            failed_sources=list(result.errors),
        )
        return result

    def _external_key(self, transaction_id: str) -> str:
        for client in self.clients:
            prefix = f"{client.get_source_name()}_internal_"
            if transaction_id.startswith(prefix):
                return transaction_id[len(prefix):]
        return transaction_id
