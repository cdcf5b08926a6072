"""
Mock payment provider client for testing and development.

Generates campsite sales (cabins, pitches, laundry, showers) so the
service can run end to end without real provider credentials.
"""

import asyncio
import random
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from paysync.core.constants import PaymentSource
from paysync.core.errors import TransactionNotFoundError
from paysync.normalization.status import TransactionStatus
from paysync.transactions.clients.base import APIConnectionError, BaseTransactionClient
from paysync.transactions.models import ProviderPayload, Transaction

# (description, amount in NOK) pairs close to the default price list
SALE_TEMPLATES = [
    ("Cabin booking", Decimal("650")),
    ("Tent 1-2 pers", Decimal("390")),
    ("Caravan 3 pers", Decimal("410")),
    ("Motorhome 4 pers", Decimal("430")),
    ("Washing machine", Decimal("40")),
    ("Bed linen", Decimal("75")),
    ("Shower", Decimal("15")),
    ("Kiosk purchase", Decimal("123.50")),
]

STATUS_WEIGHTS = [
    (TransactionStatus.SUCCEEDED, 0.85),
    (TransactionStatus.PENDING, 0.05),
    (TransactionStatus.FAILED, 0.05),
    (TransactionStatus.REFUNDED, 0.05),
]


class MockTransactionClient(BaseTransactionClient):
    """
    Mock provider that generates realistic test transactions.

    The most recent ``max_remembered`` generated transactions are kept, so
    ``fetch_by_external_id`` finds anything recently returned by ``fetch_latest``.
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        latency_ms: int = 100,
        seed: Optional[int] = None,
        max_remembered: int = 1000,
    ):
        """
        Initialize mock client.

        Args:
            failure_rate: Probability of simulated failure (0.0 to 1.0)
            latency_ms: Simulated network latency in milliseconds
            seed: Optional seed for reproducible data
            max_remembered: How many generated transactions stay retrievable by id
        """
        super().__init__()
        self.failure_rate = failure_rate
        self.latency_ms = latency_ms
        self._random = random.Random(seed)
        self._transaction_counter = 0
        self.max_remembered = max_remembered
        self._generated: "OrderedDict[str, Transaction]" = OrderedDict()

    @property
    def source(self) -> PaymentSource:
        return PaymentSource.MOCK

    async def fetch_latest(self, limit: int = 100) -> List[Transaction]:
        await self._simulate_latency()

        if self._random.random() < self.failure_rate:
            raise APIConnectionError("Simulated API connection failure")

        now = datetime.now(timezone.utc)
        transactions = [
            self._generate_transaction(
                now - timedelta(seconds=self._random.uniform(0, 86400))
            )
            for _ in range(limit)
        ]
        transactions.sort(key=lambda t: t.created_at, reverse=True)
        return transactions

    async def fetch_by_external_id(self, external_id: str) -> Transaction:
        await self._simulate_latency()
        tx = self._generated.get(external_id)
        if tx is None:
            raise TransactionNotFoundError(external_id)
        return tx

    def _generate_transaction(self, timestamp: datetime) -> Transaction:
        """Generate a single transaction."""
        self._transaction_counter += 1

        description, amount = self._random.choice(SALE_TEMPLATES)
        statuses, weights = zip(*STATUS_WEIGHTS)
        status = self._random.choices(statuses, weights=weights)[0]
        external_id = f"mock_{timestamp.strftime('%Y%m%d')}{self._transaction_counter:06d}"

        raw = {
            "id": external_id,
            "amount": str(amount),
            "description": description,
            "status": status.value,
        }
        tx = Transaction(
            id=f"mock_internal_{external_id}",
            external_id=external_id,
            source=PaymentSource.MOCK,
            amount=amount,
            currency="NOK",
            status=status,
            created_at=timestamp,
            description=description,
            payment_method="card",
            transaction_type="card_payment",
            metadata={"provider": "mock"},
            provider_payload=ProviderPayload.from_object(PaymentSource.MOCK, raw),
        )
        self._generated[external_id] = tx
        while len(self._generated) > self.max_remembered:
            self._generated.popitem(last=False)
        return tx

    async def _simulate_latency(self):
        """Simulate network latency."""
        if self.latency_ms > 0:
            jitter = self._random.uniform(0.8, 1.2)
            await asyncio.sleep((self.latency_ms / 1000) * jitter)
