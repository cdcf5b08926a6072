"""
Application context.

Builds every long-lived component once and hands them to the HTTP layer
through ``app.state``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from paysync.cache import InMemoryCache
from paysync.core.config import Settings
from paysync.prices import PriceService
from paysync.transactions.clients import (
    BaseTransactionClient,
    MockTransactionClient,
    StripeClient,
    VippsClient,
    ZettleClient,
)
from paysync.transactions.config import FetcherConfig
from paysync.transactions.fetcher import BackgroundFetcher
from paysync.transactions.repository import TransactionRepository
from paysync.transactions.service import TransactionService

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Wired components shared by request handlers and the lifespan."""

    settings: Settings
    cache: InMemoryCache
    clients: List[BaseTransactionClient]
    price_service: Optional[PriceService]
    repository: TransactionRepository
    fetcher: BackgroundFetcher
    service: TransactionService
    closed: bool = field(default=False, init=False)

    async def aclose(self) -> None:
        """Stop the fetcher and release provider connections."""
        if self.closed:
            return
        await self.fetcher.stop()
        for client in self.clients:
            await client.aclose()
        self.closed = True


def build_clients(settings: Settings) -> List[BaseTransactionClient]:
    """Create an adapter for every provider whose credentials are set."""
    clients: List[BaseTransactionClient] = []

    if settings.STRIPE_APIKEY:
        clients.append(StripeClient(settings.STRIPE_APIKEY, settings.STRIPE_APIURL))
    else:
        logger.warning("Stripe API key not configured, Stripe provider disabled")

    if settings.VIPPS_SUBSCRIPTION_KEY:
        clients.append(
            VippsClient(
                subscription_key=settings.VIPPS_SUBSCRIPTION_KEY,
                base_url=settings.VIPPS_APIURL,
                client_id=settings.VIPPS_CLIENT_ID,
                secret=settings.VIPPS_SECRET,
                merchant_serial_number=settings.VIPPS_MERCHANT_SERIAL_NUMBER,
            )
        )
    else:
        logger.warning("Vipps subscription key not configured, Vipps provider disabled")

    if settings.ZETTLE_APIKEY:
        clients.append(ZettleClient(settings.ZETTLE_APIKEY, settings.ZETTLE_APIURL))
    else:
        logger.warning("Zettle API key not configured, Zettle provider disabled")

    if settings.USE_MOCK_PROVIDER:
        if settings.ENV == "production":
            logger.error("Mock provider requested in production, ignoring")
        else:
            clients.append(MockTransactionClient())

    return clients


def build_context(
    settings: Settings,
    clients: Optional[List[BaseTransactionClient]] = None,
    price_service: Optional[PriceService] = None,
) -> AppContext:
    """
    Wire the application.

    Args:
        settings: Application settings
        clients: Adapters to use instead of the ones built from settings
        price_service: Price service to use instead of loading the price list

    Raises:
        PriceListLoadError: If the configured price list cannot be loaded
    """
    cache_ttl = timedelta(hours=settings.CACHE_TTL_HOURS)
    cache = InMemoryCache(
        default_ttl=cache_ttl,
        cleanup_interval=timedelta(minutes=settings.CACHE_CLEANUP_MINUTES),
    )

    if price_service is None:
        price_service = PriceService.from_csv(settings.PRICES_CSV_PATH, cache=cache)
    else:
        price_service.publish(cache)

    if clients is None:
        clients = build_clients(settings)

    repository = TransactionRepository(cache, clients, cache_ttl=cache_ttl)
    fetcher = BackgroundFetcher(
        cache,
        clients,
        FetcherConfig(
            interval_seconds=settings.FETCH_INTERVAL_SECONDS,
            cache_ttl_seconds=cache_ttl.total_seconds(),
        ),
    )
    service = TransactionService(repository, price_service)

    logger.info(
        "Application context built with providers: %s",
        ", ".join(repository.sources) or "none",
    )
    return AppContext(
        settings=settings,
        cache=cache,
        clients=list(clients),
        price_service=price_service,
        repository=repository,
        fetcher=fetcher,
        service=service,
    )
