import asyncio
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Ensure project root is on sys.path so `import paysync` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paysync.cache import InMemoryCache  # noqa: E402
from paysync.core.constants import PaymentSource  # noqa: E402
from paysync.core.errors import TransactionNotFoundError  # noqa: E402
from paysync.normalization.status import TransactionStatus  # noqa: E402
from paysync.prices import Price, PriceService  # noqa: E402
from paysync.transactions.clients.base import (  # noqa: E402
    APIConnectionError,
    BaseTransactionClient,
)
from paysync.transactions.models import Transaction  # noqa: E402

CAMPSITE_PRICES = [
    Price(product="Cabin", price=Decimal("650")),
    Price(product="Caravan/motorhome/tent 1-2 pers", price=Decimal("390")),
    Price(product="Caravan/motorhome/tent 3 pers", price=Decimal("410")),
    Price(product="Caravan/motorhome/tent 4 pers", price=Decimal("430")),
    Price(product="Washing machine", price=Decimal("40")),
    Price(product="Bed linen", price=Decimal("75")),
    Price(product="Shower", price=Decimal("15")),
]

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_transaction(
    external_id: str,
    source: PaymentSource = PaymentSource.STRIPE,
    amount: str = "100",
    description: str = "",
    minutes: int = 0,
) -> Transaction:
    """Build a normalized transaction created ``minutes`` after BASE_TIME."""
    return Transaction(
        id=f"{source.value}_internal_{external_id}",
        external_id=external_id,
        source=source,
        amount=Decimal(amount),
        currency="NOK",
        status=TransactionStatus.SUCCEEDED,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        description=description,
    )


class FakeClient(BaseTransactionClient):
    """In-memory provider adapter that records how often it is called."""

    def __init__(
        self,
        source: PaymentSource,
        transactions: Optional[List[Transaction]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        super().__init__()
        self._source = source
        self.transactions = list(transactions or [])
        self.error = error
        self.delay = delay
        self.fetch_calls = 0
        self.lookup_calls: List[str] = []
        self.closed = False

    @property
    def source(self) -> PaymentSource:
        return self._source

    async def fetch_latest(self, limit: int = 100) -> List[Transaction]:
        self.fetch_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.transactions[:limit]

    async def fetch_by_external_id(self, external_id: str) -> Transaction:
        self.lookup_calls.append(external_id)
        if self.error is not None:
            raise self.error
        for tx in self.transactions:
            if tx.external_id == external_id:
                return tx
        raise TransactionNotFoundError(external_id)

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> InMemoryCache:
    return InMemoryCache(clock=clock)


@pytest.fixture
def price_service() -> PriceService:
    return PriceService(CAMPSITE_PRICES)


@pytest.fixture
def prices_csv(tmp_path) -> Path:
    path = tmp_path / "prices.csv"
    lines = ["Product;Price;Currency"] + [
        f"{p.product};{p.price};{p.currency}" for p in CAMPSITE_PRICES
    ]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def failing_client() -> FakeClient:
    return FakeClient(PaymentSource.VIPPS, error=APIConnectionError("vipps is down"))


def by_source(*clients: FakeClient) -> Dict[PaymentSource, FakeClient]:
    return {c.source: c for c in clients}
