"""
Domain exceptions.

Provider transport failures live next to the adapter contract in
``paysync.transactions.clients.base``.
"""


class PaysyncError(Exception):
    """Base exception for the service."""

    pass


class TransactionNotFoundError(PaysyncError):
    """Raised when a transaction is in neither the cache nor any provider."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"transaction with ID {transaction_id} not found")


class CacheRefreshError(PaysyncError):
    """Raised when the fallback refresh of an empty cache fails."""

    pass


class PriceListLoadError(PaysyncError):
    """Raised when the price list is missing or malformed."""

    pass


class ProductNotFoundError(PaysyncError):
    """Raised by price lookups that find nothing."""

    pass
