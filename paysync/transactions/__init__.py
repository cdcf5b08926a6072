"""
Transaction aggregation.

Fetches payments from the configured providers, keeps them in the cache,
and serves them enriched with the matching product.
"""

from paysync.transactions.fetcher import BackgroundFetcher
from paysync.transactions.metrics import FetchMetrics
from paysync.transactions.models import ProviderPayload, Transaction
from paysync.transactions.repository import RefreshResult, TransactionRepository
from paysync.transactions.service import TransactionService

__all__ = [
    "BackgroundFetcher",
    "FetchMetrics",
    "ProviderPayload",
    "RefreshResult",
    "Transaction",
    "TransactionRepository",
    "TransactionService",
]
