"""
Transaction service.

Thin layer over the repository that attaches the matching product from
the price list to every transaction it returns.
"""

from typing import List, Optional

import structlog

from paysync.core.constants import TRANSACTION_LIMIT_DEFAULT
from paysync.prices import PriceService
from paysync.transactions.models import Transaction
from paysync.transactions.repository import RefreshResult, TransactionRepository

logger = structlog.get_logger(__name__)


class TransactionService:
    """Enriched access to transactions."""

    def __init__(
        self,
        repository: TransactionRepository,
        price_service: Optional[PriceService] = None,
    ):
        self.repository = repository
        self.price_service = price_service

    async def get_transactions(self, limit: Optional[int] = TRANSACTION_LIMIT_DEFAULT) -> List[Transaction]:
        transactions = await self.repository.get_transactions(limit)
        if self.price_service is None:
            logger.warning("enrichment.skipped", reason="price service not available")
            return transactions
        return [self.enrich(t) for t in transactions]

    async def get_transaction_by_id(self, transaction_id: str) -> Transaction:
        transaction = await self.repository.get_transaction_by_id(transaction_id)
        return self.enrich(transaction)

    async def refresh_cache(self) -> RefreshResult:
        return await self.repository.refresh_cache()

    def enrich(self, transaction: Transaction) -> Transaction:
        """
        Return a copy of ``transaction`` carrying its matched product.

        The given instance is never modified, since it may be the one held
        by the cache. Without a match the transaction is returned as is.
        """
        if self.price_service is None:
            return transaction

        match = self.price_service.find_best_match(transaction.amount, transaction.description)
        if match is None:
            logger.debug(
                "enrichment.no_match",
                transaction_id=transaction.id,
                amount=str(transaction.amount),
                description=transaction.description,
            )
            return transaction

        logger.debug(
            "enrichment.matched",
            transaction_id=transaction.id,
            product=match.product,
            product_price=str(match.price),
            amount=str(transaction.amount),
        )
        return transaction.model_copy(
            update={"product": match.product, "product_price": match.price}
        )
