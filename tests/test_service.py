"""Tests for transaction enrichment."""

from decimal import Decimal

import pytest
from conftest import FakeClient, make_transaction

from paysync.core.constants import PaymentSource
from paysync.core.errors import TransactionNotFoundError
from paysync.transactions.models import ProviderPayload, minor_to_major
from paysync.transactions.repository import TransactionRepository
from paysync.transactions.service import TransactionService


@pytest.fixture
def cabin_tx():
    return make_transaction("ch_cabin", amount="650", description="Cabin booking")


@pytest.fixture
def kiosk_tx():
    return make_transaction("ch_kiosk", amount="123.50", description="Kiosk", minutes=-5)


class TestEnrichment:
    """Test product matching on returned transactions."""

    @pytest.mark.asyncio
    async def test_list_is_enriched(self, cache, price_service, cabin_tx, kiosk_tx):
        cache.set_transaction(cabin_tx.external_id, cabin_tx)
        cache.set_transaction(kiosk_tx.external_id, kiosk_tx)
        service = TransactionService(
            TransactionRepository(cache, [FakeClient(PaymentSource.STRIPE)]), price_service
        )

        cabin, kiosk = await service.get_transactions(10)

        assert cabin.product == "Cabin"
        assert cabin.product_price == Decimal("650")
        assert cabin.is_enriched
        assert kiosk.product is None
        assert kiosk.product_price is None

    @pytest.mark.asyncio
    async def test_cached_instance_is_not_mutated(self, cache, price_service, cabin_tx):
        """Enrichment returns a copy and leaves the cached transaction alone."""
        cache.set_transaction(cabin_tx.external_id, cabin_tx)
        service = TransactionService(
            TransactionRepository(cache, [FakeClient(PaymentSource.STRIPE)]), price_service
        )

        enriched = await service.get_transaction_by_id("ch_cabin")

        assert enriched is not cabin_tx
        assert enriched.product == "Cabin"
        cached, _ = cache.get_transaction("ch_cabin")
        assert cached.product is None

    @pytest.mark.asyncio
    async def test_without_price_service(self, cache, cabin_tx):
        cache.set_transaction(cabin_tx.external_id, cabin_tx)
        service = TransactionService(
            TransactionRepository(cache, [FakeClient(PaymentSource.STRIPE)])
        )

        (tx,) = await service.get_transactions(10)
        assert tx.product is None
        assert (await service.get_transaction_by_id("ch_cabin")).product is None

    @pytest.mark.asyncio
    async def test_not_found_propagates(self, cache, price_service):
        service = TransactionService(
            TransactionRepository(cache, [FakeClient(PaymentSource.STRIPE)]), price_service
        )
        with pytest.raises(TransactionNotFoundError):
            await service.get_transaction_by_id("ghost")

    @pytest.mark.asyncio
    async def test_refresh_delegates(self, cache, price_service, cabin_tx):
        client = FakeClient(PaymentSource.STRIPE, [cabin_tx])
        service = TransactionService(TransactionRepository(cache, [client]), price_service)

        result = await service.refresh_cache()

        assert result.fetched == {"stripe": 1}
        assert client.fetch_calls == 1


class TestTransactionModel:
    """Test the unified transaction model."""

    @pytest.mark.parametrize(
        "minor,major",
        [(65000, "650"), (1999, "19.99"), ("1500", "15"), (None, "0"), (-250, "-2.5")],
    )
    def test_minor_to_major(self, minor, major):
        assert minor_to_major(minor) == Decimal(major)

    def test_payload_roundtrip_keeps_source(self):
        payload = ProviderPayload.from_object(PaymentSource.VIPPS, {"b": 1, "a": [2]})
        assert payload.data == '{"a": [2], "b": 1}'
        assert payload.load() == {"a": [2], "b": 1}
